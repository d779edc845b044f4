"""
Data loading for spatial workflows.
"""
from .loaders import load_units, join_attributes

__all__ = ['load_units', 'join_attributes']
