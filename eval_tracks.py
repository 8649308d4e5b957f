#!/usr/bin/env python3
"""
Track Evaluation CLI

Compare groundtruth trajectories with tracker output on basis of the target
IDs stored in observation files.

Usage:
    python eval_tracks.py groundtruth.xml tracker.xml
    python eval_tracks.py --align-ids groundtruth.xml run.sample*.observations.xml
    python eval_tracks.py --yaml report.yaml groundtruth.xml run.gpp.observations.xml

Exit codes: 0 success, 1 failure, 2 usage error.
"""

import argparse
import os
import sys

import yaml

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from rbmcda.evaluation.track_evaluator import TrackEvaluationResult, TrackEvaluator
from rbmcda.io.observations import ObservationFormatError, read_observations


def print_result(name: str, result: TrackEvaluationResult) -> None:
    print("=" * 60)
    print(f"Tracker output: {name}")
    print("=" * 60)
    print(f"Clutter (groundtruth / tracker): {result.num_clutter_groundtruth} / {result.num_clutter_tracker}")
    print(f"Targets (groundtruth / tracker): {result.num_target_groundtruth} / {result.num_target_tracker}")
    print(
        f"Clutter TP/FP/TN/FN: {result.clutter_tp}/{result.clutter_fp}/"
        f"{result.clutter_tn}/{result.clutter_fn}"
    )
    print(f"Clutter recall/precision: {result.clutter_recall:.4f} / {result.clutter_precision:.4f}")
    for label, counts in (
        ("Track segments", result.segments),
        ("Track starts", result.starts),
        ("Track ends", result.ends),
    ):
        print(
            f"{label} TP/FP/FN: {counts.tp}/{counts.fp}/{counts.fn}  "
            f"recall {counts.recall:.4f}  precision {counts.precision:.4f}"
        )
    print(f"ID switches: {result.id_switches}")
    print(f"Identity accuracy: {result.identity_accuracy:.4f}")
    print(f"Detection rate (groundtruth): {result.groundtruth_stats.detection_frequency:.4f}")
    print(f"Detection rate (tracker): {result.detection_rate:.4f}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Compare tracker output with groundtruth observations"
    )
    parser.add_argument("groundtruth_observations_file", help="Groundtruth-labelled observations")
    parser.add_argument(
        "tracker_observations_files", nargs="+", help="Tracker-labelled observations"
    )
    parser.add_argument(
        "--align-ids",
        action="store_true",
        help="Match tracker IDs to groundtruth IDs by maximal overlap",
    )
    parser.add_argument("--yaml", type=str, default=None, help="Write results to a YAML file")
    args = parser.parse_args(argv)

    try:
        groundtruth = read_observations(args.groundtruth_observations_file)
    except (FileNotFoundError, ObservationFormatError) as e:
        print(f"Failed to read ground truth observations: {e}", file=sys.stderr)
        return 1

    evaluator = TrackEvaluator(groundtruth)
    report = {}

    for filepath in args.tracker_observations_files:
        try:
            candidate = read_observations(filepath)
            result = evaluator.evaluate(candidate, align_ids=args.align_ids)
        except (FileNotFoundError, ObservationFormatError) as e:
            print(f"Failed to read tracker observations: {e}", file=sys.stderr)
            return 1
        except ValueError as e:
            print(f"Failed to evaluate tracks: {e}", file=sys.stderr)
            return 1

        print_result(filepath, result)
        report[filepath] = result.to_dict()

    if args.yaml:
        with open(args.yaml, "w", encoding="utf-8") as f:
            yaml.dump(report, f, default_flow_style=False, sort_keys=False)

    return 0


if __name__ == "__main__":
    sys.exit(main())
