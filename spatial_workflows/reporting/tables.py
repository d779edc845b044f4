"""
Result tables for spatial workflows.

Numbers are formatted here and only here: callers pass FormatOptions
explicitly, and computation modules never see presentation settings.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import pandas as pd

from spatial_workflows.core.decorators import performance_tracker
from spatial_workflows.models.estimation import FittedModel
from spatial_workflows.models.impacts import ImpactsResult
from spatial_workflows.models.selection import SelectionResult
from spatial_workflows.spatial.autocorrelation import MoranResult
from spatial_workflows.spatial.neighbors import ConnectivitySummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormatOptions:
    """Display precision and notation."""
    digits: int = 4
    scientific: bool = False

    @classmethod
    def from_config(cls, cfg) -> "FormatOptions":
        settings = cfg.settings().reporting
        return cls(digits=settings.digits, scientific=settings.scientific)


def format_number(value: Any, options: FormatOptions) -> str:
    """Format one value; non-numeric values pass through as text."""
    if value is None:
        return ''
    if isinstance(value, (bool, np.bool_)):
        return str(bool(value))
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return 'NA'
        spec = 'e' if options.scientific else 'f'
        return f"{float(value):.{options.digits}{spec}}"
    return str(value)


def format_frame(frame: pd.DataFrame, options: FormatOptions) -> pd.DataFrame:
    """Copy of ``frame`` with every cell formatted as text."""
    return frame.apply(lambda col: col.map(lambda v: format_number(v, options)))


def render(frame: pd.DataFrame, options: FormatOptions, title: Optional[str] = None) -> str:
    """Plain-text rendering of a table."""
    text = format_frame(frame, options).to_string()
    return f"{title}\n{text}" if title else text


def moran_table(result: MoranResult) -> pd.DataFrame:
    return pd.DataFrame([{
        'I': result.I,
        'E[I]': result.expected,
        'Var[I]': result.variance,
        'z': result.z,
        'p_value': result.p_value,
        'p_sim': result.p_sim,
        'assumption': result.assumption,
        'alternative': result.alternative,
    }])


def connectivity_table(summary: ConnectivitySummary) -> pd.DataFrame:
    rows = [
        ('Number of units', summary.n_units),
        ('Number of nonzero links', summary.n_links),
        ('Percentage nonzero weights', summary.pct_nonzero),
        ('Average number of links', summary.mean_links),
        ('Least connected units', f"{len(summary.least_connected)} with {summary.min_links} link(s)"),
        ('Most connected units', f"{len(summary.most_connected)} with {summary.max_links} link(s)"),
        ('Islands', len(summary.islands)),
        ('Connected components', summary.n_components),
    ]
    return pd.DataFrame(rows, columns=['statistic', 'value']).set_index('statistic')


def coefficient_table(model: FittedModel) -> pd.DataFrame:
    return model.coefficient_table()


@performance_tracker()
def selection_tables(selection: SelectionResult) -> dict:
    """Information criteria, LR tests and the selection path as DataFrames."""
    path = pd.DataFrame([
        {
            'current': step.current.label,
            'chosen': step.chosen.label if step.chosen else '',
            'tested': ', '.join(t.model_a for t in step.candidates),
        }
        for step in selection.path
    ])
    return {
        'information_criteria': selection.information_criteria(),
        'lr_tests': selection.lr_frame(),
        'path': path,
    }


def impacts_table(impacts: ImpactsResult) -> pd.DataFrame:
    """Simulated impacts if available, otherwise the point estimates."""
    if impacts.simulation.empty:
        return impacts.estimates
    return impacts.simulation.set_index(['variable', 'effect'])
