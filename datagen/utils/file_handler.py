# utils/file_handler.py

"""
File handling utilities
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, List
from urllib.parse import quote


def _safe_name(job_id: str) -> str:
    # percent-encoding keeps distinct ids in distinct files
    return quote(job_id, safe="")


def save_job_snapshot(data: Dict[str, Any], directory: str) -> str:
    """Write one job record to <directory>/<jobId>.json"""
    Path(directory).mkdir(parents=True, exist_ok=True)

    filepath = os.path.join(directory, f"{_safe_name(data['jobId'])}.json")
    tmp_path = filepath + ".tmp"

    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, filepath)

    return filepath


def load_job_snapshots(directory: str) -> List[Dict[str, Any]]:
    """Read every job record previously saved in directory"""
    path = Path(directory)
    if not path.exists():
        return []

    records = []
    for filepath in sorted(path.glob("*.json")):
        with open(filepath, 'r', encoding='utf-8') as f:
            records.append(json.load(f))

    return records
