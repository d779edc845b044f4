"""
Plain-text interchange formats for spatial weights.

Two formats are supported:

* an adjacency list, which round-trips neighbour sets and weights exactly::

    n <count> transform <r|b|o> ids <int|float|str>
    <id> <k>
    <neighbour ids separated by spaces>
    <weights separated by spaces>

* a delimited full matrix with unit ids as both header row and index column.
"""
import logging
from pathlib import Path
from typing import Hashable, List, Tuple, Union

import numpy as np
import pandas as pd

from spatial_workflows.core.decorators import handle_errors
from spatial_workflows.core.exceptions import GeometryError, ValidationError, WeightsFormatError
from spatial_workflows.spatial.weights import SpatialWeights, TRANSFORMS

# Initialize logger
logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


ID_TYPES = {'int': int, 'float': float, 'str': str}


def _id_kind(uid: Hashable) -> str:
    if isinstance(uid, (bool, np.bool_)):
        return 'other'
    if isinstance(uid, (int, np.integer)):
        return 'int'
    if isinstance(uid, (float, np.floating)):
        return 'float'
    if isinstance(uid, str):
        return 'str'
    return 'other'


def _id_type(ids: Tuple[Hashable, ...]) -> str:
    """Single id type recorded in the header; ids must share it to round-trip exactly."""
    kinds = {_id_kind(uid) for uid in ids}
    if 'other' in kinds:
        bad = [uid for uid in ids if _id_kind(uid) == 'other']
        raise GeometryError(f"Unit identifiers must be int, float or str to be written: {bad[:5]}")
    if len(kinds) > 1:
        raise GeometryError(f"Unit identifiers mix types {sorted(kinds)} and cannot be written")
    return kinds.pop() if kinds else 'int'


def _format_id(uid: Hashable) -> str:
    if isinstance(uid, (float, np.floating)):
        return repr(float(uid))
    if isinstance(uid, np.integer):
        return str(int(uid))
    return str(uid)


def _check_writable_ids(ids: Tuple[Hashable, ...]) -> None:
    for uid in ids:
        text = str(uid)
        if text == '' or any(c.isspace() for c in text):
            raise GeometryError(f"Unit identifier {uid!r} cannot be written to a whitespace-delimited file")


def format_adjacency_list(sw: SpatialWeights) -> str:
    """Render weights in the adjacency-list text format."""
    _check_writable_ids(sw.ids)
    lines = [f"n {sw.n} transform {sw.transform} ids {_id_type(sw.ids)}"]
    for uid in sw.ids:
        nbs = sw.neighbors[uid]
        lines.append(f"{_format_id(uid)} {len(nbs)}")
        lines.append(' '.join(_format_id(nb) for nb in nbs))
        lines.append(' '.join(repr(float(w)) for w in sw.weights[uid]))
    return '\n'.join(lines) + '\n'


def parse_adjacency_list(text: str) -> SpatialWeights:
    """
    Parse the adjacency-list text format.

    Raises:
        WeightsFormatError: If the header, counts or values are malformed.
    """
    lines = text.splitlines()
    if not lines:
        raise WeightsFormatError("Empty weights file")

    header = lines[0].split()
    if len(header) != 6 or header[0] != 'n' or header[2] != 'transform' or header[4] != 'ids':
        raise WeightsFormatError(f"Malformed header: {lines[0]!r}")

    try:
        n = int(header[1])
    except ValueError as e:
        raise WeightsFormatError(f"Invalid unit count: {header[1]!r}", original_error=e) from e

    transform = header[3].lower()
    if transform not in TRANSFORMS:
        raise WeightsFormatError(f"Unknown transform in header: {header[3]!r}")

    id_kind = header[5]
    if id_kind not in ID_TYPES:
        raise WeightsFormatError(f"Unknown id type in header: {id_kind!r}")
    cast = ID_TYPES[id_kind]

    body = lines[1:]
    # tolerate a trailing blank line
    while len(body) > 3 * n and body[-1].strip() == '':
        body = body[:-1]
    if len(body) != 3 * n:
        raise WeightsFormatError(f"Expected {3 * n} lines for {n} units, found {len(body)}")

    ids: List[Hashable] = []
    neighbors, wts = {}, {}
    try:
        for pos in range(n):
            unit_line, nb_line, w_line = body[3 * pos:3 * pos + 3]
            parts = unit_line.split()
            if len(parts) != 2:
                raise WeightsFormatError(f"Malformed unit line {3 * pos + 2}: {unit_line!r}")
            uid = cast(parts[0])
            k = int(parts[1])

            nbs = tuple(cast(tok) for tok in nb_line.split())
            ws = tuple(float(tok) for tok in w_line.split())
            if len(nbs) != k or len(ws) != k:
                raise WeightsFormatError(
                    f"Unit {uid!r} declares {k} neighbours but lists {len(nbs)} ids and {len(ws)} weights"
                )
            ids.append(uid)
            neighbors[uid] = nbs
            wts[uid] = ws
    except ValueError as e:
        raise WeightsFormatError(f"Invalid value in weights file: {e}", original_error=e) from e

    try:
        return SpatialWeights(ids=tuple(ids), neighbors=neighbors, weights=wts, transform=transform)
    except ValidationError as e:
        raise WeightsFormatError(f"Inconsistent weights file: {e.message}", original_error=e) from e


@handle_errors
def write_adjacency_list(sw: SpatialWeights, file_path: PathLike) -> Path:
    """Write weights to an adjacency-list file."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_adjacency_list(sw))
    logger.info(f"Wrote adjacency list for {sw.n} units to {path}")
    return path


@handle_errors
def read_adjacency_list(file_path: PathLike) -> SpatialWeights:
    """Read weights from an adjacency-list file."""
    path = Path(file_path)
    sw = parse_adjacency_list(path.read_text())
    logger.info(f"Read adjacency list for {sw.n} units from {path}")
    return sw


@handle_errors
def write_matrix_csv(sw: SpatialWeights, file_path: PathLike, sep: str = ',') -> Path:
    """Write the full weights matrix with unit ids as header row and index column."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = sw.to_frame()
    frame.index.name = 'id'
    frame.to_csv(path, sep=sep)
    logger.info(f"Wrote {sw.n}x{sw.n} weights matrix to {path}")
    return path


@handle_errors
def read_matrix_csv(file_path: PathLike, sep: str = ',', transform: str = 'o') -> SpatialWeights:
    """
    Read a full weights matrix written by ``write_matrix_csv``.

    Args:
        file_path: Path to the delimited file.
        sep: Field delimiter.
        transform: Normalisation label to attach, since the matrix format does
            not record it.

    Raises:
        WeightsFormatError: If the header does not match the index or cells are not numeric.
    """
    path = Path(file_path)
    frame = pd.read_csv(path, sep=sep, index_col=0)

    ids = frame.index.tolist()
    if pd.api.types.is_integer_dtype(frame.index) or pd.api.types.is_float_dtype(frame.index):
        cast = int if pd.api.types.is_integer_dtype(frame.index) else float
        try:
            columns = [cast(c) for c in frame.columns]
        except ValueError as e:
            raise WeightsFormatError("Matrix header does not match numeric row ids", original_error=e) from e
    else:
        columns = [str(c) for c in frame.columns]
        ids = [str(i) for i in ids]

    if columns != ids:
        raise WeightsFormatError("Matrix header and index must list the same ids in the same order")

    try:
        values = frame.to_numpy(dtype=float)
    except ValueError as e:
        raise WeightsFormatError("Weights matrix contains non-numeric cells", original_error=e) from e

    try:
        sw = SpatialWeights.from_dense(values, ids=ids, transform=transform)
    except ValidationError as e:
        raise WeightsFormatError(f"Invalid weights matrix: {e.message}", original_error=e) from e

    logger.info(f"Read {sw.n}x{sw.n} weights matrix from {path}")
    return sw
