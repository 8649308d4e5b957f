"""
Consensus Extractor (Greedy Partitioning)

Merges the association records of all particles into one labeling.

Graph:
    nodes  - observations (t, m)
    edges  - successive observations of the same target in some particle
             (t1 < t2, gaps allowed)
    weight - sum of the joint association probabilities of the particles
             containing the edge

Greedy partitioning takes edges by decreasing weight and links u -> v when u
has no successor and v has no predecessor yet, so tracks never branch.
Chains of a single observation are labelled clutter (0); the other chains
are numbered 1..K by first appearance.

Optional ESS pruning drops edges lighter than the probability mass outside
the max(1, floor(ESS) - 1) most probable particles.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from rbmcda.datatypes import CLUTTER
from rbmcda.tracking.resampling import effective_sample_size

logger = logging.getLogger(__name__)

Edge = Tuple[int, int]


def singletons_to_clutter(labels: Sequence[np.ndarray]) -> List[np.ndarray]:
    """Relabel targets observed only once as clutter."""
    counts: Dict[int, int] = {}
    for frame_labels in labels:
        for target_id in frame_labels:
            if target_id != CLUTTER:
                counts[int(target_id)] = counts.get(int(target_id), 0) + 1

    result = []
    for frame_labels in labels:
        out = np.array(frame_labels, dtype=np.int64, copy=True)
        for m, target_id in enumerate(out):
            if target_id != CLUTTER and counts[int(target_id)] == 1:
                out[m] = CLUTTER
        result.append(out)
    return result


def renumber_by_first_appearance(labels: Sequence[np.ndarray]) -> List[np.ndarray]:
    """Renumber target IDs 1..K in order of first appearance, clutter stays 0."""
    mapping: Dict[int, int] = {}
    result = []
    for frame_labels in labels:
        out = np.array(frame_labels, dtype=np.int64, copy=True)
        for m, target_id in enumerate(out):
            if target_id != CLUTTER:
                out[m] = mapping.setdefault(int(target_id), len(mapping) + 1)
        result.append(out)
    return result


def ess_threshold(probabilities: np.ndarray) -> float:
    """
    Edge weight threshold from the ESS of the joint probabilities.

    Probability mass outside the max(1, floor(ESS) - 1) most probable particles.
    """
    probabilities = np.asarray(probabilities, dtype=np.float64)
    n = probabilities.size
    k = min(n, max(1, int(math.floor(effective_sample_size(probabilities))) - 1))
    rest = np.sort(probabilities)[: n - k]
    return float(rest.sum())


@dataclass
class ObservationGraph:
    """
    Weighted observation adjacency graph.

    Attributes:
        frame_sizes: Number of observations per frame
        edges: (u, v) node pairs with u earlier than v -> weight
    """

    frame_sizes: List[int]
    edges: Dict[Edge, float] = field(default_factory=dict)

    def __post_init__(self):
        self.offsets = np.concatenate([[0], np.cumsum(self.frame_sizes)]).astype(np.int64)

    @property
    def num_nodes(self) -> int:
        return int(self.offsets[-1])

    def node(self, t: int, m: int) -> int:
        return int(self.offsets[t] + m)

    def frame_index(self, node: int) -> Tuple[int, int]:
        t = int(np.searchsorted(self.offsets, node, side="right") - 1)
        return t, int(node - self.offsets[t])

    @classmethod
    def from_records(
        cls,
        records: Sequence[Sequence[np.ndarray]],
        probabilities: np.ndarray,
        frame_sizes: Sequence[int],
    ) -> "ObservationGraph":
        """
        Accumulate the track edges of every particle.

        Args:
            records: Per particle, per frame target labels
            probabilities: Joint association probability per particle
            frame_sizes: Observations per frame
        """
        graph = cls(frame_sizes=list(frame_sizes))

        for record, prob in zip(records, probabilities):
            last_node: Dict[int, int] = {}
            for t, frame_labels in enumerate(record):
                for m, target_id in enumerate(frame_labels):
                    if target_id == CLUTTER:
                        continue
                    v = graph.node(t, m)
                    u = last_node.get(int(target_id))
                    if u is not None:
                        graph.edges[(u, v)] = graph.edges.get((u, v), 0.0) + float(prob)
                    last_node[int(target_id)] = v

        return graph

    def prune(self, threshold: float) -> int:
        """Remove edges lighter than threshold. Returns the number removed."""
        weak = [e for e, w in self.edges.items() if w < threshold]
        for e in weak:
            del self.edges[e]
        return len(weak)

    def to_dot(self, name: str = "observations") -> str:
        """Graphviz description, nodes named t_m."""
        lines = [f"digraph {name} {{"]
        for node in range(self.num_nodes):
            t, m = self.frame_index(node)
            lines.append(f'  n{node} [label="{t}_{m}"];')
        for (u, v), w in sorted(self.edges.items()):
            lines.append(f'  n{u} -> n{v} [label="{w:.4f}", weight={w:.6f}];')
        lines.append("}")
        return "\n".join(lines) + "\n"


class GreedyPartitioner:
    """Greedy, non-branching partitioning of an ObservationGraph into chains."""

    def partition(self, graph: ObservationGraph) -> List[np.ndarray]:
        n = graph.num_nodes
        parent = list(range(n))
        succ = [-1] * n
        pred = [-1] * n

        def find(a: int) -> int:
            while parent[a] != a:
                parent[a] = parent[parent[a]]
                a = parent[a]
            return a

        ordered = sorted(graph.edges.items(), key=lambda item: (-item[1], item[0]))
        for (u, v), w in ordered:
            if w <= 0 or succ[u] != -1 or pred[v] != -1:
                continue
            ru, rv = find(u), find(v)
            if ru == rv:
                continue
            parent[rv] = ru
            succ[u] = v
            pred[v] = u

        # Number chains by their first node, singletons become clutter
        labels = [np.zeros(size, dtype=np.int64) for size in graph.frame_sizes]
        next_id = 1
        for node in range(n):
            if pred[node] != -1 or succ[node] == -1:
                continue
            current = node
            while current != -1:
                t, m = graph.frame_index(current)
                labels[t][m] = next_id
                current = succ[current]
            next_id += 1

        return labels


@dataclass
class ConsensusResult:
    labels: List[np.ndarray]
    graph: ObservationGraph
    threshold: float = 0.0
    pruned_edges: int = 0

    @property
    def num_tracks(self) -> int:
        ids = {int(i) for frame in self.labels for i in frame if i != CLUTTER}
        return len(ids)


class ConsensusExtractor:
    """
    One final labeling from all particles.

    Example:
        >>> extractor = ConsensusExtractor(ess_pruning=True)
        >>> consensus = extractor.extract(records, joint_probs, frame_sizes)
        >>> consensus.labels[0]
    """

    def __init__(self, ess_pruning: bool = True) -> None:
        self.ess_pruning = ess_pruning
        self.partitioner = GreedyPartitioner()

    def extract(
        self,
        records: Sequence[Sequence[np.ndarray]],
        probabilities: np.ndarray,
        frame_sizes: Sequence[int],
        graph: Optional[ObservationGraph] = None,
    ) -> ConsensusResult:
        probabilities = np.asarray(probabilities, dtype=np.float64)
        if graph is None:
            graph = ObservationGraph.from_records(records, probabilities, frame_sizes)

        threshold = 0.0
        pruned = 0
        if self.ess_pruning and probabilities.size > 1:
            threshold = ess_threshold(probabilities)
            pruned = graph.prune(threshold)
            logger.debug("ESS pruning at %.6f removed %d edges", threshold, pruned)

        labels = self.partitioner.partition(graph)
        result = ConsensusResult(labels=labels, graph=graph, threshold=threshold, pruned_edges=pruned)
        logger.info("Consensus labeling: %d tracks", result.num_tracks)
        return result
