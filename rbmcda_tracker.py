#!/usr/bin/env python3
"""
RBMCDA Tracker CLI

Track targets in a sequence of observations and write per-sample labellings,
their joint probabilities and the consensus labelling.

Usage:
    python rbmcda_tracker.py [parameters] inputobservations_file output_basename
    python rbmcda_tracker.py --config tracker.yaml obs.xml results/run1

Examples:
    # All parameters on the command line
    python rbmcda_tracker.py --RandomSeed 1 --NumSamples 100 --DeltaT 1 \\
        --XMin 0 --XMax 512 --YMin 0 --YMax 512 --PDetect 0.9 \\
        --LambdaBirth 0.1 --LambdaClutter 1 --LambdaDeath 0.05 \\
        --PModelTransRwRw 0.9 --PModelTransRwFle 0.1 \\
        --PModelTransFleRw 0.1 --PModelTransFleFle 0.9 \\
        --Rxy 4 --Rsize 1 --Qxy 4 --QxyPrev 1 --Qsize 0.1 \\
        obs.xml results/run1

    # Parameters from YAML, seed overridden
    python rbmcda_tracker.py --config tracker.yaml --RandomSeed 7 obs.xml out/run

Outputs:
    <output_basename>.sampleNNN.observations.xml
    <output_basename>.samples.probs
    <output_basename>.gpp.observations.xml
    <output_basename>.summary.yaml

Exit codes: 0 success, 1 failure or missing parameter, 2 usage error.
"""

import argparse
import logging
import os
import sys

import yaml

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from rbmcda.config import (
    PARAMETER_NAMES,
    ConfigurationError,
    TrackerConfig,
    load_tracker_config,
)
from rbmcda.io.exporter import export_tracking_result
from rbmcda.io.observations import ObservationFormatError, read_observations
from rbmcda.io.recorder import record_run
from rbmcda.tracking.tracker import MultiTargetTracker

logger = logging.getLogger("rbmcda_tracker")

INT_PARAMETERS = ("RandomSeed", "NumSamples", "MaxNumNeighbors", "Workers")
FLOAT_PARAMETERS = (
    "DeltaT",
    "XMin",
    "XMax",
    "YMin",
    "YMax",
    "SqrtSizeMin",
    "SqrtSizeMax",
    "PDetect",
    "LambdaBirth",
    "LambdaClutter",
    "LambdaDeath",
    "PModelTransRwRw",
    "PModelTransRwFle",
    "PModelTransFleRw",
    "PModelTransFleFle",
    "Rxy",
    "Rsize",
    "Qxy",
    "QxyPrev",
    "Qsize",
    "ESSPercentage",
    "MaxDistNeighbors",
)

HELP = {
    "RandomSeed": "Seed of the random number generator",
    "NumSamples": "Number of particles (samples)",
    "DeltaT": "Time between two frames",
    "XMin": "Minimum x of the observation domain",
    "XMax": "Maximum x of the observation domain",
    "YMin": "Minimum y of the observation domain",
    "YMax": "Maximum y of the observation domain",
    "SqrtSizeMin": "Minimum sqrt(size) (default: from data)",
    "SqrtSizeMax": "Maximum sqrt(size) (default: from data)",
    "PDetect": "Probability of target detection (negative: estimate from data)",
    "LambdaBirth": "Mean number of newborn targets per frame",
    "LambdaClutter": "Mean number of clutter observations per frame (negative: estimate)",
    "LambdaDeath": "Rate of the exponential target death model",
    "PModelTransRwRw": "P(RW at t | RW at t-1)",
    "PModelTransRwFle": "P(FLE at t | RW at t-1)",
    "PModelTransFleRw": "P(RW at t | FLE at t-1)",
    "PModelTransFleFle": "P(FLE at t | FLE at t-1)",
    "Rxy": "Measurement noise variance of x/y",
    "Rsize": "Measurement noise variance of sqrt(size)",
    "Qxy": "Process noise variance of x/y",
    "QxyPrev": "Process noise variance of the previous x/y",
    "Qsize": "Process noise variance of sqrt(size)",
    "ESSPercentage": "Resample if ESS < ESSPercentage * NumSamples (default: 0.5)",
    "MaxNumNeighbors": "Maximum number of candidate targets per observation (0: all)",
    "MaxDistNeighbors": "Maximum distance of candidate targets (0: unlimited)",
    "Workers": "Worker threads for the per-particle updates (default: 1)",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="RBMCDA multi-target tracker with IMM motion models"
    )

    # Config file
    parser.add_argument("--config", type=str, default=None, help="YAML parameter file")

    # Numeric parameters
    for name in INT_PARAMETERS:
        parser.add_argument(f"--{name}", type=int, default=None, help=HELP[name])
    for name in FLOAT_PARAMETERS:
        parser.add_argument(f"--{name}", type=float, default=None, help=HELP[name])

    # Flags and optional outputs
    parser.add_argument(
        "--NoNeighborsOldAlgo",
        action="store_true",
        default=None,
        help="Consider all live targets for every observation",
    )
    parser.add_argument(
        "--NoESSPruning",
        action="store_true",
        help="Keep all graph edges in the consensus extraction",
    )
    parser.add_argument("--DotGraphFile", type=str, default=None, help="Write the observation graph")
    parser.add_argument("--hdf5", type=str, default=None, help="Write run diagnostics to HDF5")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress output")

    # Required positionals
    parser.add_argument("inputobservations_file", help="Observation file (XML or region set)")
    parser.add_argument("output_basename", help="Prefix of all output files")

    return parser


def build_config(args: argparse.Namespace) -> TrackerConfig:
    """Merge the YAML config (if any) with command line values."""
    values = {}
    if args.config:
        values.update(load_tracker_config(args.config).to_dict())

    for name in INT_PARAMETERS + FLOAT_PARAMETERS + ("NoNeighborsOldAlgo", "DotGraphFile"):
        value = getattr(args, name)
        if value is not None:
            values[name] = value
    if args.NoESSPruning:
        values["ESSPruning"] = False

    values = {k: v for k, v in values.items() if k in PARAMETER_NAMES}
    return TrackerConfig.from_mapping(values)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        config = build_config(args).validate()
    except (ConfigurationError, FileNotFoundError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        observations = read_observations(args.inputobservations_file)
    except (FileNotFoundError, ObservationFormatError) as e:
        print(f"ERROR: Failed to read observations: {e}", file=sys.stderr)
        return 1

    if not args.quiet:
        print("=" * 60)
        print("RBMCDA Tracker")
        print("=" * 60)
        print(f"Observations: {args.inputobservations_file}")
        print(f"Frames: {observations.num_frames}")
        print(f"Total observations: {int(observations.observation_counts().sum())}")
        print(f"Samples: {config.num_samples}")
        print(f"Neighbor-limited proposals: {config.neighbors_limited}")
        print("=" * 60)

    try:
        result = MultiTargetTracker(config).run(observations, progress=args.progress)
        written = export_tracking_result(
            result, args.output_basename, dot_graph_file=config.dot_graph_file
        )
        if args.hdf5:
            written["hdf5"] = record_run(result, args.hdf5)
    except (ConfigurationError, OSError, ValueError) as e:
        logger.error("Tracking failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.quiet:
        print("\n--- RESULTS ---")
        print(f"Resamplings: {result.sampler.num_resamplings}")
        print(f"Final ESS: {result.sampler.ess_history[-1] if result.sampler.ess_history else 0:.2f}")
        print(f"Consensus tracks: {result.consensus.num_tracks}")
        print(f"Runtime: {result.runtime_s:.2f} s")
        print(f"Consensus: {written['gpp']}")
        print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
