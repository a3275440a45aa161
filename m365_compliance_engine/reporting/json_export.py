"""
JSON exporter — Writes the outcome of one reconciliation pass to disk.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .. import __version__


def export_run_json(
    pass_result: Any,
    output_dir: Path,
    run_id: str,
    guardian_record: Optional[dict] = None,
    client_stats: Optional[dict] = None,
) -> Path:
    """
    Write the pass result, guardian audit record, and client statistics.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "engine": "M365 Compliance Standards Engine",
            "version": __version__,
            "run_id": run_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
        },
        "result": pass_result.to_dict(),
        "safety": guardian_record or {},
        "client_stats": client_stats or {},
    }

    filename = f"{pass_result.standard}_{run_id}.json"
    filepath = output_dir / filename

    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
