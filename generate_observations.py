#!/usr/bin/env python3
"""
Observation Generator CLI

Generate a synthetic, groundtruth-labelled observation sequence.

Usage:
    python generate_observations.py out/obs.xml
    python generate_observations.py --config generator.yaml out/obs.xml
    python generate_observations.py --NumFrames 100 --LambdaClutter 2 out/obs.xml

Examples:
    # Three random targets, no clutter
    python generate_observations.py --RandomSeed 1 --NumInitialTargets 3 obs.xml
"""

import argparse
import os
import sys

import yaml

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from rbmcda.io.observations import write_observations
from rbmcda.simulation.generator import GeneratorConfig, ObservationSeriesGenerator

OPTIONS = {
    "RandomSeed": ("seed", int),
    "NumFrames": ("num_frames", int),
    "DeltaT": ("delta_t", float),
    "XMin": ("x_min", float),
    "XMax": ("x_max", float),
    "YMin": ("y_min", float),
    "YMax": ("y_max", float),
    "SqrtSizeMin": ("sqrt_size_min", float),
    "SqrtSizeMax": ("sqrt_size_max", float),
    "NumInitialTargets": ("num_initial_targets", int),
    "PDetect": ("p_detect", float),
    "LambdaClutter": ("lambda_clutter", float),
    "LambdaBirth": ("lambda_birth", float),
    "LambdaDeath": ("lambda_death", float),
    "PModelTransRwRw": ("p_trans_rw_rw", float),
    "PModelTransRwFle": ("p_trans_rw_fle", float),
    "PModelTransFleRw": ("p_trans_fle_rw", float),
    "PModelTransFleFle": ("p_trans_fle_fle", float),
    "Rxy": ("r_xy", float),
    "Rsize": ("r_size", float),
    "Qxy": ("q_xy", float),
    "QxyPrev": ("q_xy_prev", float),
    "Qsize": ("q_size", float),
}


def load_config_from_yaml(filepath: str) -> dict:
    """Load generator options (CLI names) from YAML file."""
    with open(filepath, "r") as f:
        data = yaml.safe_load(f) or {}
    return data.get("generator", data)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate synthetic observations")
    parser.add_argument("--config", type=str, default=None, help="YAML configuration file")
    for name, (_, kind) in OPTIONS.items():
        parser.add_argument(f"--{name}", type=kind, default=None)
    parser.add_argument("--quiet", action="store_true", help="Suppress output")
    parser.add_argument("output_file", help="Observation file to write")
    args = parser.parse_args(argv)

    values = {}
    if args.config:
        if not os.path.exists(args.config):
            print(f"Error: Config file not found: {args.config}")
            return 1
        for name, value in load_config_from_yaml(args.config).items():
            if name not in OPTIONS:
                print(f"Error: Unknown generator parameter: {name}")
                return 1
            attr, kind = OPTIONS[name]
            values[attr] = kind(value)

    for name, (attr, _) in OPTIONS.items():
        value = getattr(args, name)
        if value is not None:
            values[attr] = value

    config = GeneratorConfig(**values)

    try:
        series = ObservationSeriesGenerator(config).generate()
        write_observations(series.observations, args.output_file)
    except (ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1

    if not args.quiet:
        print("=" * 60)
        print("Observation Generator")
        print("=" * 60)
        print(f"Frames: {config.num_frames}")
        print(f"Observations: {int(series.observations.observation_counts().sum())}")
        print(f"Targets: {series.max_target_id} ({series.num_births} born, {series.num_deaths} died)")
        print(f"Clutter: {series.num_clutter}")
        print(f"Missed detections: {series.num_missed}")
        print(f"Output: {args.output_file}")
        print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
