"""
Reporting: formatted tables and exports.
"""
from .tables import (
    FormatOptions, format_number, format_frame, render, moran_table,
    connectivity_table, coefficient_table, selection_tables, impacts_table
)
from .exporters import NumpyEncoder, export_json, export_csv, export_selection

__all__ = [
    'FormatOptions', 'format_number', 'format_frame', 'render', 'moran_table',
    'connectivity_table', 'coefficient_table', 'selection_tables', 'impacts_table',
    'NumpyEncoder', 'export_json', 'export_csv', 'export_selection',
]
