#!/usr/bin/env python
"""
Setup script for the spatial_workflows package.

This package provides spatial weights construction, Moran's I testing,
spatial regression model selection and distribution-dynamics helpers.
"""
from setuptools import setup, find_packages

setup(
    name="spatial_workflows",
    version="1.0.0",
    description="Spatial econometrics workflows: weights, autocorrelation and model selection",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "statsmodels>=0.13.0",
        "scipy>=1.7.0",
        "geopandas>=0.10.0",
        "shapely>=1.8.0",
        "libpysal>=4.5.0",
        "esda>=2.4.0",
        "spreg>=1.2.4",
        "scikit-learn>=1.0.0",
        "pyyaml>=5.4.0",
        "pydantic>=2.0.0",
        "typer>=0.4.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0.0",
            "pytest-cov>=2.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "spatial-workflows=spatial_workflows.cli.app:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: GIS",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
    ],
    python_requires=">=3.9",
)
