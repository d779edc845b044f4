"""
Loading areal units and attribute tables.
"""
import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd
import geopandas as gpd

from spatial_workflows.core.decorators import handle_errors, performance_tracker
from spatial_workflows.core.exceptions import GeometryError, ValidationError
from spatial_workflows.spatial.neighbors import validate_ids

logger = logging.getLogger(__name__)


@handle_errors
@performance_tracker()
def load_units(
    file_path: Union[str, Path], id_column: str, layer: Optional[str] = None
) -> gpd.GeoDataFrame:
    """
    Load spatial units from any OGR-readable file.

    Args:
        file_path: Path to a shapefile, GeoPackage, GeoJSON, ...
        id_column: Attribute holding the unit identifier.
        layer: Layer name for multi-layer sources.

    Returns:
        GeoDataFrame indexed by unit id, rows in file order.

    Raises:
        GeometryError: If identifiers are missing, duplicated or contain
            whitespace, or geometries are missing.
    """
    path = Path(file_path)
    if not path.exists():
        raise ValidationError(f"Geometry file not found: {path}")

    logger.info(f"Loading spatial units from {path}")
    gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)

    if id_column not in gdf.columns:
        raise GeometryError(f"Identifier column '{id_column}' not found in {path.name}")

    validate_ids(gdf[id_column].tolist())

    empty = gdf.geometry.isna() | gdf.geometry.is_empty
    if empty.any():
        bad = gdf.loc[empty, id_column].tolist()
        raise GeometryError(f"{len(bad)} units have missing or empty geometries: {bad[:10]}")

    gdf = gdf.set_index(id_column, drop=False)
    gdf.index.name = None

    logger.info(f"Loaded {len(gdf)} units (crs={gdf.crs})")
    return gdf


@handle_errors
def join_attributes(
    units: gpd.GeoDataFrame, table: pd.DataFrame, on: str, validate: bool = True
) -> gpd.GeoDataFrame:
    """
    Attach an attribute table to the units by identifier.

    Every unit must find exactly one row in ``table`` when ``validate`` is set.
    """
    if on not in table.columns:
        raise ValidationError(f"Join column '{on}' not found in attribute table")

    attributes = table.set_index(on)
    if attributes.index.duplicated().any():
        raise ValidationError(f"Attribute table has duplicated '{on}' values")

    missing = [uid for uid in units.index if uid not in attributes.index]
    if validate and missing:
        raise ValidationError(f"{len(missing)} units have no attributes: {missing[:10]}")

    overlap = [c for c in attributes.columns if c in units.columns]
    joined = units.join(attributes.drop(columns=overlap), how='left')
    logger.info(f"Joined {attributes.shape[1] - len(overlap)} attribute columns onto {len(units)} units")
    return joined
