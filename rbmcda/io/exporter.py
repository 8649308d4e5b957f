"""
Tracking Result Exporter

Writes the outputs of a tracker run:

    <basename>.sampleNNN.observations.xml   one labelling per particle
    <basename>.samples.probs                index<TAB>joint probability per particle
    <basename>.gpp.observations.xml         consensus (greedy partitioning) labelling
    <basename>.summary.yaml                 run summary and parameters
    DotGraphFile (optional)                 observation graph in Graphviz syntax
"""

import logging
import os
from datetime import datetime
from typing import Dict, Optional

import numpy as np
import yaml

from rbmcda.io.observations import write_observations

logger = logging.getLogger(__name__)


def sample_filename(basename: str, index: int, num_samples: int) -> str:
    """Per-sample output name, index zero-padded to the digits of num_samples - 1."""
    digits = max(1, len(str(max(num_samples - 1, 0))))
    return f"{basename}.sample{index:0{digits}d}.observations.xml"


def write_probabilities(probabilities: np.ndarray, filepath: str) -> str:
    """Write one 'index<TAB>probability' row per sample."""
    with open(filepath, "w", encoding="utf-8") as f:
        for i, p in enumerate(probabilities):
            f.write(f"{i}\t{float(p)!r}\n")
    return filepath


def read_probabilities(filepath: str) -> np.ndarray:
    """Read a probability table written by write_probabilities."""
    values = []
    with open(filepath, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                _, prob = line.split("\t")
                values.append(float(prob))
    return np.array(values, dtype=np.float64)


def write_dot_graph(result, filepath: str) -> str:
    with open(filepath, "w", encoding="utf-8") as f:
        f.write(result.consensus.graph.to_dot())
    return filepath


def _plain(value):
    """Convert numpy scalars for yaml.dump."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, np.generic):
        return value.item()
    return value


def write_summary(result, filepath: str) -> str:
    """Run summary and resolved parameters as YAML."""
    data = {
        "run": {
            "created": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "version": "1.0",
        },
        "summary": _plain(result.to_dict()),
    }
    with open(filepath, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return filepath


def export_tracking_result(
    result, basename: str, dot_graph_file: Optional[str] = None, summary: bool = True
) -> Dict[str, object]:
    """
    Write all outputs of a tracker run.

    Args:
        result: TrackingResult
        basename: Output path prefix
        dot_graph_file: Optional path for the observation graph
        summary: Also write <basename>.summary.yaml

    Returns:
        Dict with the written paths ('samples' is a list)
    """
    directory = os.path.dirname(basename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    written: Dict[str, object] = {"samples": []}

    for i in range(result.num_samples):
        path = sample_filename(basename, i, result.num_samples)
        write_observations(result.sample_observations(i), path)
        written["samples"].append(path)

    written["probs"] = write_probabilities(
        result.joint_probabilities, f"{basename}.samples.probs"
    )
    written["gpp"] = write_observations(
        result.consensus_observations(), f"{basename}.gpp.observations.xml"
    )

    if dot_graph_file:
        written["dot"] = write_dot_graph(result, dot_graph_file)

    if summary:
        written["summary"] = write_summary(result, f"{basename}.summary.yaml")

    logger.info("Wrote %d sample files and consensus to %s.*", result.num_samples, basename)
    return written
