"""
I/O Package

Observation file reading/writing, tracker output export and HDF5 run records.
"""

from .exporter import export_tracking_result, read_probabilities, sample_filename
from .observations import (
    ObservationFormatError,
    read_observations,
    read_region_set,
    regions_to_observations,
    write_observations,
)
from .recorder import load_run, record_run

__all__ = [
    "read_observations",
    "write_observations",
    "read_region_set",
    "regions_to_observations",
    "ObservationFormatError",
    "export_tracking_result",
    "read_probabilities",
    "sample_filename",
    "record_run",
    "load_run",
]
