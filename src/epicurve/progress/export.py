# src/epicurve/progress/export.py
from __future__ import annotations
import io
import logging
import zipfile
from pathlib import Path
from typing import Optional, Dict, Any

import pandas as pd

from .fit_multi import MultiFit


def export_results_zip(
    multi: MultiFit,
    out_dir: Path,
    zip_name: str = "epicurve_outputs.zip",
    area: Optional[pd.DataFrame] = None,
    cleanup_csv: bool = True,
) -> Dict[str, Any]:
    """
    Write the fit tables as CSVs and bundle them in a ZIP.
    Files written:
      - parameters.csv   (one row per stratum x model)
      - predictions.csv  (long observed/predicted/residual table)
      - failures.csv     (only when some cells failed)
      - area.csv         (optional AUDPC/AUDPS table)
      - <zip_name>
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    tables = {
        "parameters.csv": multi.parameters_table(),
        "predictions.csv": multi.predictions_table(),
    }
    failures = multi.failures_table()
    if not failures.empty:
        tables["failures.csv"] = failures
    if area is not None and not area.empty:
        tables["area.csv"] = area

    csv_paths = []
    for name, table in tables.items():
        path = out_dir / name
        table.to_csv(path, index=False)
        csv_paths.append(path)

    zip_path = out_dir / zip_name
    bio = io.BytesIO()
    with zipfile.ZipFile(bio, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for p in csv_paths:
            zf.write(p, arcname=p.name)
    zip_bytes = bio.getvalue()
    zip_path.write_bytes(zip_bytes)

    if cleanup_csv:
        for p in csv_paths:
            p.unlink(missing_ok=True)

    logging.info(f"Wrote {len(csv_paths)} tables to {zip_path}")
    return {"zip_bytes": zip_bytes, "zip_path": zip_path, "files": [p.name for p in csv_paths]}
