"""
Writer — serialize a TU inspection to JSON.

Filesystem layout:
    <output_dir>/cxbind_inspection.json
"""
import json
from pathlib import Path

from cxbind.io.schema import TuInspection

INSPECTION_FILE = "cxbind_inspection.json"


def write_inspection(inspection: TuInspection, output_dir: Path) -> Path:
    """
    Write *inspection* into *output_dir*.

    Creates *output_dir* if it does not exist.
    Returns the path of the written file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    path = output_dir / INSPECTION_FILE
    path.write_text(
        json.dumps(
            inspection.model_dump(mode="json"),
            indent=2,
            sort_keys=True,
        )
        + "\n"
    )
    return path
