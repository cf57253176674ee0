"""
Writer — serialize the run report to JSON.

Filesystem layout:
    <output_dir>/tint_report.json
"""
import json
from pathlib import Path

from tint.io.schema import TintReport

REPORT_NAME = "tint_report.json"


def write_report(report: TintReport, output_dir: Path) -> Path:
    """
    Write tint_report.json into *output_dir*.

    Creates *output_dir* if it does not exist.
    Returns the report path.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    report_path = output_dir / REPORT_NAME
    report_path.write_text(
        json.dumps(
            report.model_dump(mode="json"),
            indent=2,
            sort_keys=True,
        )
        + "\n"
    )

    return report_path
