"""
Command-line interface for spatial workflows.
"""
from .app import app, main

__all__ = ['app', 'main']
