"""
Profile — the trimming descriptor loaded from a YAML profile document.

The profile carries every opinion about what survives in the image, so the
core scanners stay free of policy.  Filter tags and autodeps modes are
closed vocabularies.
"""
from dataclasses import dataclass
from enum import Enum, unique
from typing import FrozenSet, List, Tuple


@unique
class FilterTag(str, Enum):
    """Categories of data still removable after automatic examination."""

    L10N = "l10n"
    I18N = "i18n"
    DOC = "doc"
    MAN = "man"
    LOG = "log"
    DIR = "dir"
    JUNK = "junk"


FILTER_VOCABULARY: FrozenSet[str] = frozenset(t.value for t in FilterTag)


@unique
class Autodeps(str, Enum):
    """How far package dependencies of a target are followed."""

    UNDEF = "undef"
    FREE = "free"
    CLEAN = "clean"
    TIGHT = "tight"

    @classmethod
    def parse(cls, value: str) -> "Autodeps":
        """Map a mode string to a mode; anything unrecognised disables tracing."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNDEF


@dataclass(frozen=True)
class Profile:
    """Immutable view of a validated profile document."""

    targets: Tuple[str, ...]
    packages: Tuple[str, ...] = ()
    filters: FrozenSet[FilterTag] = frozenset()
    prune: Tuple[str, ...] = ()
    keep: Tuple[str, ...] = ()

    # Where the profile came from (file path or "<memory>")
    source: str = "<memory>"

    @property
    def profile_id(self) -> str:
        name = self.source.rsplit("/", 1)[-1]
        for ext in (".yaml", ".yml"):
            if name.endswith(ext):
                return name[: -len(ext)]
        return name

    def has_filter(self, tag: FilterTag) -> bool:
        return tag in self.filters

    def filter_l10n(self) -> bool:
        return self.has_filter(FilterTag.L10N)

    def filter_i18n(self) -> bool:
        return self.has_filter(FilterTag.I18N)

    def filter_doc(self) -> bool:
        return self.has_filter(FilterTag.DOC)

    def filter_man(self) -> bool:
        return self.has_filter(FilterTag.MAN)

    def filter_log(self) -> bool:
        return self.has_filter(FilterTag.LOG)

    def filter_dir(self) -> bool:
        return self.has_filter(FilterTag.DIR)

    def filter_junk(self) -> bool:
        return self.has_filter(FilterTag.JUNK)

    def active_filters(self) -> List[str]:
        """Active filter tags in vocabulary order."""
        return [t.value for t in FilterTag if t in self.filters]
