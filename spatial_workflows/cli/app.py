"""
Command-line application for spatial workflows.
"""
import logging
from pathlib import Path
from typing import Optional

import pandas as pd
import typer

from spatial_workflows.core.config import Config
from spatial_workflows.core.exceptions import SpatialWorkflowError
from spatial_workflows.core.logging_setup import setup_logging_from_config
from spatial_workflows.data.loaders import load_units
from spatial_workflows.dynamics.clustering import density_clusters
from spatial_workflows.dynamics.density import kde, ridge_data
from spatial_workflows.models.impacts import compute_impacts
from spatial_workflows.models.selection import select_model
from spatial_workflows.models.specification import ModelSpecification, Variant
from spatial_workflows.reporting.exporters import export_csv, export_selection
from spatial_workflows.reporting.tables import (
    FormatOptions, connectivity_table, moran_table, render, selection_tables
)
from spatial_workflows.spatial.autocorrelation import moran_test
from spatial_workflows.spatial.neighbors import build_neighbors
from spatial_workflows.spatial.weights import SpatialWeights
from spatial_workflows.spatial.weights_io import read_adjacency_list, write_adjacency_list, write_matrix_csv

logger = logging.getLogger(__name__)

app = typer.Typer(help="Spatial weights, Moran's I and spatial regression model selection")


def _init(config_path: Optional[str], verbose: bool) -> Config:
    cfg = Config(config_path)
    if verbose:
        cfg.set('logging.log_level', 'DEBUG')
    setup_logging_from_config(cfg, log_to_file=False)
    cfg.settings()
    return cfg


def _weights(
    units, cfg: Config, rule: Optional[str], k: Optional[int], metric: Optional[str],
    transform: Optional[str], island_policy: Optional[str], weights_file: Optional[str]
) -> SpatialWeights:
    settings = cfg.settings().weights
    if weights_file:
        sw = read_adjacency_list(weights_file)
        return sw.with_transform(transform) if transform else sw

    nb = build_neighbors(
        units,
        rule=rule or settings.contiguity,
        k=k or settings.k,
        metric=metric or settings.distance_metric,
    )
    return SpatialWeights.from_neighbors(
        nb,
        transform=transform or settings.transform,
        island_policy=island_policy or settings.island_policy,
    )


@app.command()
def weights(
    geometry: str = typer.Argument(..., help='Polygon or point file readable by geopandas'),
    id_column: str = typer.Option(..., help='Unit identifier column'),
    rule: Optional[str] = typer.Option(None, help='queen, rook or knn'),
    k: Optional[int] = typer.Option(None, help='Neighbours for knn'),
    metric: Optional[str] = typer.Option(None, help='planar or great_circle for knn'),
    transform: Optional[str] = typer.Option(None, help='r, b or o'),
    island_policy: Optional[str] = typer.Option(None, help='error, exclude or zero_fill'),
    output: Optional[str] = typer.Option(None, help='Adjacency-list output file'),
    matrix: Optional[str] = typer.Option(None, help='Full matrix CSV output file'),
    config: Optional[str] = typer.Option(None, help='Configuration file path'),
    verbose: bool = typer.Option(False, help='Enable verbose logging'),
):
    """Build spatial weights and print their connectivity summary."""
    try:
        cfg = _init(config, verbose)
        units = load_units(geometry, id_column)
        sw = _weights(units, cfg, rule, k, metric, transform, island_policy, None)

        typer.echo(render(connectivity_table(sw.summary()), FormatOptions.from_config(cfg), 'Connectivity'))
        if output:
            write_adjacency_list(sw, output)
        if matrix:
            write_matrix_csv(sw, matrix)
    except SpatialWorkflowError as e:
        logger.error(f"Weights construction failed: {e}")
        raise typer.Exit(code=1)


@app.command()
def moran(
    geometry: str = typer.Argument(..., help='Polygon or point file readable by geopandas'),
    variable: str = typer.Option(..., help='Attribute to test'),
    id_column: str = typer.Option(..., help='Unit identifier column'),
    rule: Optional[str] = typer.Option(None, help='queen, rook or knn'),
    weights_file: Optional[str] = typer.Option(None, help='Adjacency-list weights file'),
    assumption: Optional[str] = typer.Option(None, help='normal or randomization'),
    alternative: Optional[str] = typer.Option(None, help='two-sided, greater or less'),
    permutations: Optional[int] = typer.Option(None, help='Random permutations'),
    seed: Optional[int] = typer.Option(None, help='Random seed for permutations'),
    config: Optional[str] = typer.Option(None, help='Configuration file path'),
    verbose: bool = typer.Option(False, help='Enable verbose logging'),
):
    """Run Moran's I on one attribute."""
    try:
        cfg = _init(config, verbose)
        settings = cfg.settings().moran
        units = load_units(geometry, id_column)
        if variable not in units.columns:
            logger.error(f"Column '{variable}' not found in {geometry}")
            raise typer.Exit(code=1)
        sw = _weights(units, cfg, rule, None, None, None, None, weights_file)

        result = moran_test(
            sw.align(units[variable]),
            sw,
            assumption=assumption or settings.assumption,
            alternative=alternative or settings.alternative,
            permutations=settings.permutations if permutations is None else permutations,
            random_state=settings.random_state if seed is None else seed,
        )
        typer.echo(render(moran_table(result), FormatOptions.from_config(cfg), f"Moran's I: {variable}"))
    except SpatialWorkflowError as e:
        logger.error(f"Moran's I failed: {e}")
        raise typer.Exit(code=1)


@app.command()
def select(
    geometry: str = typer.Argument(..., help='Polygon or point file readable by geopandas'),
    response: str = typer.Option(..., help='Dependent variable'),
    predictors: str = typer.Option(..., help='Comma-separated explanatory variables'),
    id_column: str = typer.Option(..., help='Unit identifier column'),
    rule: Optional[str] = typer.Option(None, help='queen, rook or knn'),
    weights_file: Optional[str] = typer.Option(None, help='Adjacency-list weights file'),
    output_dir: Optional[str] = typer.Option(None, help='Directory for JSON and CSV results'),
    impacts: bool = typer.Option(True, help='Simulate impacts of the preferred model'),
    seed: Optional[int] = typer.Option(None, help='Random seed for impact simulation'),
    config: Optional[str] = typer.Option(None, help='Configuration file path'),
    verbose: bool = typer.Option(False, help='Enable verbose logging'),
):
    """Fit the spatial model family and select the preferred specification."""
    try:
        cfg = _init(config, verbose)
        settings = cfg.settings().selection
        options = FormatOptions.from_config(cfg)

        units = load_units(geometry, id_column)
        sw = _weights(units, cfg, rule, None, None, None, None, weights_file)
        spec = ModelSpecification(
            response=response,
            predictors=tuple(p.strip() for p in predictors.split(',') if p.strip()),
            variant=Variant.OLS,
            weights=sw,
        )

        selection = select_model(
            spec, units, sw,
            significance_level=settings.significance_level,
            lm_significance_level=settings.lm_significance_level,
        )

        tables = selection_tables(selection)
        typer.echo(render(tables['information_criteria'], options, 'Information criteria'))
        typer.echo(render(tables['lr_tests'], options, 'Likelihood-ratio tests'))
        typer.echo(f"Preferred specification: {selection.preferred.label}")

        impact_result = None
        if impacts and selection.preferred_model.estimable:
            impact_result = compute_impacts(
                selection.preferred_model, sw,
                draws=settings.impact_draws,
                random_state=settings.random_state if seed is None else seed,
            )
            typer.echo(render(impact_result.estimates, options, 'Impacts'))

        if output_dir:
            export_selection(selection, output_dir, impacts=impact_result)
    except SpatialWorkflowError as e:
        logger.error(f"Model selection failed: {e}")
        raise typer.Exit(code=1)


@app.command()
def density(
    table: str = typer.Argument(..., help='CSV file of observations'),
    value_column: str = typer.Option(..., help='Column to estimate the density of'),
    group_column: Optional[str] = typer.Option(None, help='Group column for ridge data'),
    output: Optional[str] = typer.Option(None, help='CSV output file'),
    config: Optional[str] = typer.Option(None, help='Configuration file path'),
    verbose: bool = typer.Option(False, help='Enable verbose logging'),
):
    """Estimate kernel densities, per group when a group column is given."""
    try:
        cfg = _init(config, verbose)
        settings = cfg.settings().dynamics
        path = Path(table)
        if not path.exists():
            logger.error(f"Table not found: {path}")
            raise typer.Exit(code=1)
        frame = pd.read_csv(path)
        if value_column not in frame.columns:
            logger.error(f"Column '{value_column}' not found in {path.name}")
            raise typer.Exit(code=1)

        if group_column:
            result = ridge_data(
                frame, value_column, group_column,
                bandwidth=settings.bandwidth, gridsize=settings.gridsize,
            )
        else:
            result = kde(frame[value_column], bandwidth=settings.bandwidth, gridsize=settings.gridsize).to_frame()

        if output:
            export_csv(result, output, index=False)
        typer.echo(f"Estimated density on {len(result)} grid points")
    except SpatialWorkflowError as e:
        logger.error(f"Density estimation failed: {e}")
        raise typer.Exit(code=1)


@app.command()
def cluster(
    table: str = typer.Argument(..., help='CSV file, one row per unit'),
    columns: str = typer.Option(..., help='Comma-separated clustering variables'),
    id_column: Optional[str] = typer.Option(None, help='Unit identifier column'),
    eps: Optional[float] = typer.Option(None, help='DBSCAN radius (defaults to configuration)'),
    min_samples: Optional[int] = typer.Option(None, help='DBSCAN core neighbourhood size'),
    auto_eps: bool = typer.Option(False, help='Pick eps from the nearest-neighbour distances'),
    standardize: bool = typer.Option(True, help='Scale variables before clustering'),
    output: Optional[str] = typer.Option(None, help='CSV output file for cluster labels'),
    config: Optional[str] = typer.Option(None, help='Configuration file path'),
    verbose: bool = typer.Option(False, help='Enable verbose logging'),
):
    """Group units with DBSCAN; noise points get label -1."""
    try:
        cfg = _init(config, verbose)
        settings = cfg.settings().dynamics
        path = Path(table)
        if not path.exists():
            logger.error(f"Table not found: {path}")
            raise typer.Exit(code=1)
        frame = pd.read_csv(path)
        if id_column:
            if id_column not in frame.columns:
                logger.error(f"Column '{id_column}' not found in {path.name}")
                raise typer.Exit(code=1)
            frame = frame.set_index(id_column)

        result = density_clusters(
            frame,
            [c.strip() for c in columns.split(',') if c.strip()],
            eps=None if auto_eps else (eps or settings.dbscan_eps),
            min_samples=min_samples or settings.dbscan_min_samples,
            standardize=standardize,
        )

        if output:
            export_csv(result.labels.to_frame(), output)
        typer.echo(
            f"Found {result.n_clusters} cluster(s) and {result.n_noise} noise point(s) (eps={result.eps:.4g})"
        )
    except SpatialWorkflowError as e:
        logger.error(f"Clustering failed: {e}")
        raise typer.Exit(code=1)


def main():
    app()


if __name__ == "__main__":
    main()
