"""
RBMCDA API Examples

Usage examples demonstrating the tracker API.
"""

import os
import sys
import tempfile

import numpy as np

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _generate(seed=7, num_frames=40, lambda_clutter=1.0):
    from rbmcda.simulation.generator import GeneratorConfig, ObservationSeriesGenerator

    config = GeneratorConfig(
        num_frames=num_frames,
        num_initial_targets=4,
        p_detect=0.9,
        lambda_clutter=lambda_clutter,
        lambda_birth=0.05,
        lambda_death=0.02,
        seed=seed,
    )
    return ObservationSeriesGenerator(config).generate()


def _tracker_config(**overrides):
    from rbmcda.config import TrackerConfig

    values = {
        "RandomSeed": 1,
        "NumSamples": 50,
        "DeltaT": 1.0,
        "XMin": 0.0,
        "XMax": 100.0,
        "YMin": 0.0,
        "YMax": 100.0,
        "PDetect": 0.9,
        "LambdaBirth": 0.05,
        "LambdaClutter": 1.0,
        "LambdaDeath": 0.02,
        "PModelTransRwRw": 0.9,
        "PModelTransRwFle": 0.1,
        "PModelTransFleRw": 0.1,
        "PModelTransFleFle": 0.9,
        "Rxy": 1.0,
        "Rsize": 0.1,
        "Qxy": 1.0,
        "QxyPrev": 0.1,
        "Qsize": 0.01,
    }
    values.update(overrides)
    return TrackerConfig.from_mapping(values)


def example_generate_observations():
    """
    Example 1: Synthetic Observations

    Generate a labelled observation sequence and print its statistics.
    """
    from rbmcda.evaluation.sequence_stats import association_statistics

    series = _generate()
    stats = association_statistics(series.observations)

    print("=== Generated Sequence ===")
    print(f"Frames: {series.observations.num_frames}")
    print(f"Observations: {int(series.observations.observation_counts().sum())}")
    print(f"Clutter: {series.num_clutter}")
    print(f"Missed detections: {series.num_missed}")
    print(f"Detection frequency: {stats.detection_frequency:.2f}")


def example_track_and_evaluate():
    """
    Example 2: Tracking and Evaluation

    Run the particle tracker and compare its consensus with the labels.
    """
    from rbmcda.evaluation.track_evaluator import TrackEvaluator
    from rbmcda.tracking.tracker import MultiTargetTracker

    series = _generate()
    result = MultiTargetTracker(_tracker_config()).run(series.observations)
    evaluation = TrackEvaluator(series.observations).evaluate(
        result.consensus_observations(), align_ids=True
    )

    print("\n=== Tracking ===")
    print(f"Samples: {result.num_samples}")
    print(f"Resamplings: {result.sampler.num_resamplings}")
    print(f"Consensus tracks: {result.consensus.num_tracks}")
    print(f"Segment recall: {evaluation.segments.recall:.3f}")
    print(f"Segment precision: {evaluation.segments.precision:.3f}")
    print(f"ID switches: {evaluation.id_switches}")


def example_neighbor_limits():
    """
    Example 3: Limited Candidate Sets

    Compare unlimited association candidates with a distance limit.
    """
    from rbmcda.tracking.tracker import MultiTargetTracker

    series = _generate(lambda_clutter=3.0)

    print("\n=== Neighbor Limits ===")
    for label, overrides in (
        ("unlimited", {}),
        ("MaxDistNeighbors=5", {"MaxDistNeighbors": 5.0}),
        ("MaxNumNeighbors=2", {"MaxNumNeighbors": 2}),
    ):
        config = _tracker_config(NumSamples=20, LambdaClutter=3.0, **overrides)
        result = MultiTargetTracker(config).run(series.observations)
        probs = result.joint_probabilities
        print(f"  {label:20s} tracks={result.consensus.num_tracks:3d}  max p={np.max(probs):.3f}")


def example_export():
    """
    Example 4: Output Files

    Write per-sample labellings, probabilities and the consensus.
    """
    from rbmcda.io.exporter import export_tracking_result
    from rbmcda.tracking.tracker import MultiTargetTracker

    series = _generate(num_frames=15)
    result = MultiTargetTracker(_tracker_config(NumSamples=5)).run(series.observations)

    print("\n=== Export ===")
    with tempfile.TemporaryDirectory() as tmp:
        written = export_tracking_result(result, os.path.join(tmp, "run"))
        for path in written["samples"]:
            print(f"  {os.path.basename(path)}")
        print(f"  {os.path.basename(written['probs'])}")
        print(f"  {os.path.basename(written['gpp'])}")


if __name__ == "__main__":
    example_generate_observations()
    example_track_and_evaluate()
    example_neighbor_limits()
    example_export()
