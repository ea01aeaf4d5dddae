"""
JSON reporting utilities.

Simple wrappers for ensuring a directory exists and writing query
results to JSON files.  Values JSON cannot represent natively (dates,
decimals, bytes) are written using their string form.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, List


def ensure_dir(directory: str) -> None:
    """Ensure a directory exists, creating it recursively if necessary."""
    if not directory:
        return
    logging.info("[jsonReporter] ensure_dir", extra={"dir": directory})
    Path(directory).mkdir(parents=True, exist_ok=True)


def _default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    return str(value)


def write_json(file_path: str, data: Any) -> None:
    """Write an object to a JSON file, ensuring the directory exists."""
    ensure_dir(os.path.dirname(file_path))
    logging.info("[jsonReporter] write_json", extra={"file": file_path})
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=_default)


def write_rows(file_path: str, rows: List[dict]) -> None:
    """Write fetched rows together with their count."""
    write_json(file_path, {"count": len(rows), "rows": rows})
