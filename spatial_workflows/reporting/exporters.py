"""
Export of workflow results to JSON and CSV.
"""
import os
import json
import logging
from dataclasses import is_dataclass, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from spatial_workflows.core.decorators import handle_errors
from spatial_workflows.models.impacts import ImpactsResult
from spatial_workflows.models.selection import SelectionResult
from spatial_workflows.reporting.tables import selection_tables

logger = logging.getLogger(__name__)


class NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles NumPy, pandas, enum and dataclass values."""

    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return None if np.isnan(obj) else float(obj)
        elif isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, np.bool_):
            return bool(obj)
        elif isinstance(obj, (datetime, pd.Timestamp)):
            return obj.isoformat()
        elif isinstance(obj, Enum):
            return getattr(obj, 'label', obj.name)
        elif is_dataclass(obj) and not isinstance(obj, type):
            return obj.to_dict() if hasattr(obj, 'to_dict') else asdict(obj)
        elif isinstance(obj, pd.DataFrame):
            return obj.to_dict(orient='records')
        return super(NumpyEncoder, self).default(obj)


@handle_errors
def export_json(data: Dict[str, Any], file_path: Union[str, Path]) -> Path:
    """Write a dictionary as indented JSON."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(data, f, cls=NumpyEncoder, indent=2)
    logger.info(f"Saved JSON to {path}")
    return path


@handle_errors
def export_csv(frame: pd.DataFrame, file_path: Union[str, Path], index: bool = True) -> Path:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=index)
    logger.info(f"Saved CSV to {path}")
    return path


def export_selection(
    selection: SelectionResult,
    output_dir: Union[str, Path],
    impacts: Optional[ImpactsResult] = None,
    prefix: str = 'selection',
) -> Dict[str, Path]:
    """
    Save a selection result (and optional impacts) as JSON plus CSV tables.

    Returns:
        Mapping of artefact name to written path.
    """
    output_dir = Path(output_dir)
    os.makedirs(output_dir, exist_ok=True)

    payload = selection.to_dict()
    if impacts is not None:
        payload['impacts'] = impacts.to_dict()

    written = {'json': export_json(payload, output_dir / f"{prefix}.json")}
    for name, frame in selection_tables(selection).items():
        written[name] = export_csv(frame, output_dir / f"{prefix}_{name}.csv")
    if impacts is not None:
        written['impacts'] = export_csv(impacts.simulation, output_dir / f"{prefix}_impacts.csv", index=False)

    logger.info(f"Exported selection results to {output_dir}")
    return written
