#!/usr/bin/env python3
"""
Observations Info CLI

Print information about the observations in a file and, optionally, about
their association to targets and clutter.

Usage:
    python observations_info.py observations.xml
    python observations_info.py -a observations.xml

Exit codes: 0 success, 1 failure, 2 usage error.
"""

import argparse
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from rbmcda.evaluation.sequence_stats import association_statistics, observation_statistics
from rbmcda.io.observations import ObservationFormatError, read_observations


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Print information about observations")
    parser.add_argument("observations_file", help="Observation file (XML or region set)")
    parser.add_argument(
        "-a",
        "--associationInfo",
        action="store_true",
        help="Also print clutter, birth and detection statistics from the target IDs",
    )
    args = parser.parse_args(argv)

    try:
        observations = read_observations(args.observations_file)
    except (FileNotFoundError, ObservationFormatError) as e:
        print(f"ERROR: Failed to read observations: {e}", file=sys.stderr)
        return 1

    stats = observation_statistics(observations)
    print("--- Observations Info ---")
    print(f"Mean number of observations:        {stats.mean}")
    print(f"Median number of observations:      {stats.median}")
    print(f"Variance of number of observations: {stats.variance}")
    print(f"Minimum number of observations:     {stats.minimum}")
    print(f"Maximum number of observations:     {stats.maximum}")
    print(f"Total number of observations:       {stats.total}")
    print(f"Minimum distance of observations:   {stats.min_distance}")
    print(f"Maximum distance of observations:   {stats.max_distance}")

    if args.associationInfo:
        assoc = association_statistics(observations)
        print("\n--- Association Info ---")
        print(f"Mean number of clutter observations:            {assoc.clutter_mean}")
        print(f"Variance of the number of clutter observations: {assoc.clutter_variance}")
        print(f"Mean number of newborn targets:                 {assoc.birth_mean}")
        print(f"Variance of the number of newborn targets:      {assoc.birth_variance}")
        print(f"Relative frequency of target detections:        {assoc.detection_frequency}")
        for gap, count in sorted(assoc.gap_histogram.items()):
            print(f"  Reappearance after {gap} frame(s): {count}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
