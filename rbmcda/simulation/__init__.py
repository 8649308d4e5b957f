"""
Simulation Package

Synthetic observation sequences with known target associations.
"""

from .generator import GeneratedSeries, GeneratorConfig, ObservationSeriesGenerator

__all__ = [
    "GeneratorConfig",
    "GeneratedSeries",
    "ObservationSeriesGenerator",
]
