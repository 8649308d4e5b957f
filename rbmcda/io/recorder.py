"""
HDF5 Run Recorder

Saves the diagnostics of a tracker run for post-analysis.

File Structure:
    /config                 parameters as attributes
    /sampler
        - ess               ESS per frame
        - resampled         resampling flag per frame
        - weights           final importance weights
        - joint_probs       joint association probability per sample
        - lineage           parent indices (generations x samples)
        - lineage_frames    frame of each resampling generation
    /labels
        - offsets           start index of each frame in the flat label arrays
        - consensus         consensus labels (flat)
        - samples           sample labels (samples x observations)
"""

import json
from datetime import datetime
from typing import Any, Dict

import h5py
import numpy as np


def _flatten(labels) -> np.ndarray:
    if not labels:
        return np.zeros(0, dtype=np.int64)
    return np.concatenate([np.asarray(f, dtype=np.int64) for f in labels])


def record_run(result, filepath: str) -> str:
    """
    Write a TrackingResult to HDF5.

    Returns:
        Path to saved file
    """
    frame_sizes = [len(frame) for frame in result.observations]
    offsets = np.concatenate([[0], np.cumsum(frame_sizes)]).astype(np.int64)

    with h5py.File(filepath, "w") as f:
        config_group = f.create_group("config")
        for key, value in result.config.to_dict().items():
            if value is None:
                continue
            if isinstance(value, (int, float, str, bool)):
                config_group.attrs[key] = value
            else:
                config_group.attrs[key] = json.dumps(value)

        sampler = result.sampler
        sampler_group = f.create_group("sampler")
        sampler_group.create_dataset("ess", data=np.asarray(sampler.ess_history, dtype=np.float64))
        sampler_group.create_dataset("resampled", data=np.asarray(sampler.resampled, dtype=bool))
        sampler_group.create_dataset("weights", data=np.asarray(sampler.weights, dtype=np.float64))
        sampler_group.create_dataset(
            "joint_probs", data=np.asarray(result.joint_probabilities, dtype=np.float64)
        )
        sampler_group.create_dataset("lineage", data=sampler.lineage.as_array())
        sampler_group.create_dataset(
            "lineage_frames", data=np.asarray(sampler.lineage.frames, dtype=np.int64)
        )

        labels_group = f.create_group("labels")
        labels_group.create_dataset("offsets", data=offsets)
        labels_group.create_dataset("consensus", data=_flatten(result.consensus.labels))
        samples = np.stack([_flatten(labels) for labels in result.sample_labels])
        labels_group.create_dataset("samples", data=samples)

        f.attrs["version"] = "1.0"
        f.attrs["created"] = datetime.now().strftime("%Y%m%d_%H%M%S")
        f.attrs["software"] = "rbmcda"

    return filepath


def load_run(filepath: str) -> Dict[str, Any]:
    """
    Read back a recorded run.

    Returns:
        Dict with 'config' (attributes), sampler arrays and per-frame label lists
    """
    with h5py.File(filepath, "r") as f:
        offsets = f["labels/offsets"][()]

        def split(flat):
            return [flat[offsets[t] : offsets[t + 1]] for t in range(len(offsets) - 1)]

        return {
            "config": dict(f["config"].attrs),
            "ess": f["sampler/ess"][()],
            "resampled": f["sampler/resampled"][()],
            "weights": f["sampler/weights"][()],
            "joint_probs": f["sampler/joint_probs"][()],
            "lineage": f["sampler/lineage"][()],
            "lineage_frames": f["sampler/lineage_frames"][()],
            "consensus": split(f["labels/consensus"][()]),
            "samples": [split(row) for row in f["labels/samples"][()]],
        }
