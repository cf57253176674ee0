"""
tint — trim a root filesystem image down to what its target binaries need.

The keep set is built from ELF link closures, dpkg ownership, category
filters and manual keep/prune globs; everything else in the image is
removed (or only listed in dry-run mode).
"""

__version__ = "0.1.0"
TOOL_VERSION = "v0"
PACKAGE_NAME = "tint"
SCHEMA_VERSION = "0.1"
