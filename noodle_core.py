"""Monte Carlo estimation of the noodle loop problem.

``N`` noodles lie in a bowl.  All ``2N`` ends are paired uniformly at random
and tied together; every tie either closes a loop or lengthens a chain.  This
module draws such random pairings, counts the loops they form and repeats the
experiment to estimate the expected number of loops.

A pairing is stored as an ``N x N`` symmetric integer matrix ``A``:
``A[i][j]`` (``i != j``) is the number of ties between noodles ``i`` and ``j``
and ``A[i][i]`` is one when both ends of noodle ``i`` were tied to each other.
The helpers :func:`export_simulation_run` and :func:`save_simulation_run` write
finished runs using the schema read by :mod:`noodle_visualization`.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter, deque
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

CHECK_INVARIANTS = False
DEFAULT_NOODLES = 100
DEFAULT_TRIALS = 1_000_000


# -------------------------
# Matching generation
# -------------------------
def _draw_ends(n: int, rng: np.random.Generator) -> np.ndarray:
    # ends 2k and 2k+1 of the shuffled sequence are tied together
    return rng.permutation(np.repeat(np.arange(n), 2))


def _fill(matrix: np.ndarray, u: np.ndarray, v: np.ndarray) -> None:
    self_tied = u == v
    np.add.at(matrix, (u[self_tied], u[self_tied]), 1)
    cross = ~self_tied
    np.add.at(matrix, (u[cross], v[cross]), 1)
    np.add.at(matrix, (v[cross], u[cross]), 1)


def _partner_table(ends: np.ndarray) -> np.ndarray:
    # row k holds the noodles tied to the two ends of noodle k
    slots = np.argsort(ends, kind='stable')
    return ends[slots ^ 1].reshape(-1, 2)


def random_matching(n: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Return the adjacency matrix of one uniformly random pairing of ``2n`` ends."""

    if n < 0:
        raise ValueError("number of noodles must be non-negative")
    if rng is None:
        rng = np.random.default_rng()

    matrix = np.zeros((n, n), dtype=np.int64)
    ends = _draw_ends(n, rng)
    _fill(matrix, ends[0::2], ends[1::2])
    if CHECK_INVARIANTS:
        verify_matching(matrix)
    return matrix


class MatchingArena:
    """Reusable matrix buffer for drawing many pairings of the same size.

    Each :meth:`draw` resets only the cells written by the previous draw, so
    the per-trial cost stays linear in ``n`` instead of clearing all ``n**2``
    cells.  The returned matrix is the arena's own buffer and is overwritten by
    the next draw.  Alongside the matrix the arena keeps a partner table of
    the same draw, which :meth:`count_loops` walks without scanning dense rows.
    """

    def __init__(self, n: int):
        if n < 0:
            raise ValueError("number of noodles must be non-negative")
        self.n = n
        self.matrix = np.zeros((n, n), dtype=np.int64)
        self.partners = np.zeros((n, 2), dtype=np.int64)
        self._last: Optional[Tuple[np.ndarray, np.ndarray]] = None

    def reset(self) -> None:
        if self._last is not None:
            u, v = self._last
            self.matrix[u, v] = 0
            self.matrix[v, u] = 0
            self._last = None

    def draw(self, rng: np.random.Generator) -> np.ndarray:
        self.reset()
        ends = _draw_ends(self.n, rng)
        u, v = ends[0::2], ends[1::2]
        _fill(self.matrix, u, v)
        self.partners = _partner_table(ends)
        self._last = (u, v)
        if CHECK_INVARIANTS:
            verify_matching(self.matrix)
        return self.matrix

    def count_loops(self) -> int:
        """Count the loops of the current draw."""

        return sum(1 for _ in _walk_loops(self.partners.tolist()))


def matching_pairs(matrix: np.ndarray) -> List[Tuple[int, int]]:
    """List the ties of a pairing as ``(u, v)`` with ``u <= v``, repeated by multiplicity."""

    pairs: List[Tuple[int, int]] = []
    rows, cols = np.nonzero(np.triu(matrix))
    for i, j in zip(rows.tolist(), cols.tolist()):
        pairs.extend([(i, j)] * int(matrix[i, j]))
    return pairs


def format_matching(matrix: np.ndarray) -> str:
    """Render the pairing matrix as aligned rows of multiplicities."""

    return "\n".join(" ".join(f"{int(value):4d}" for value in row) for row in matrix)


def verify_matching(matrix: np.ndarray) -> None:
    """Assert the structural invariants of a pairing matrix."""

    assert matrix.ndim == 2 and matrix.shape[0] == matrix.shape[1], "matrix must be square"
    assert (matrix >= 0).all(), "negative multiplicity"
    assert (matrix == matrix.T).all(), "matrix is not symmetric"
    degree = matrix.sum(axis=1) + np.diagonal(matrix)
    assert (degree == 2).all(), "every noodle must use exactly two ends"


# -------------------------
# Loop counting
# -------------------------
def _neighbour_lists(matrix: np.ndarray) -> List[List[int]]:
    neighbours: List[List[int]] = [[] for _ in range(matrix.shape[0])]
    rows, cols = np.nonzero(matrix)
    for i, j in zip(rows.tolist(), cols.tolist()):
        neighbours[i].append(j)
    return neighbours


def _walk_loops(neighbours: Sequence[Sequence[int]]) -> Iterable[List[int]]:
    n = len(neighbours)
    visited = [False] * n
    for i in range(n):
        if visited[i]:
            continue

        # a noodle tied to itself is a loop on its own
        if i in neighbours[i]:
            visited[i] = True
            yield [i]
            continue

        component = [i]
        visited[i] = True
        queue = deque([i])
        while queue:
            u = queue.popleft()
            for j in neighbours[u]:
                if j == u or visited[j]:
                    continue
                visited[j] = True
                component.append(j)
                queue.append(j)
        yield component


def count_loops(matrix: np.ndarray) -> int:
    """Count the loops formed by a pairing."""

    return sum(1 for _ in _walk_loops(_neighbour_lists(matrix)))


def loop_components(matrix: np.ndarray) -> List[List[int]]:
    """Return the noodles of each loop, in the order the loops are found."""

    return list(_walk_loops(_neighbour_lists(matrix)))


# -------------------------
# Monte Carlo driver
# -------------------------
@dataclass(frozen=True)
class SimulationSummary:
    noodles: int
    trials: int
    total_loops: int
    expected_loops: float
    per_trial_loop_counts: Tuple[int, ...]
    seed: Optional[int] = None


def noodle_trial(n: int, rng: np.random.Generator) -> int:
    return count_loops(random_matching(n, rng))


def _run_trials(n: int, trials: int, rng: np.random.Generator) -> Tuple[int, List[int]]:
    arena = MatchingArena(n)
    counts = [0] * trials
    total = 0
    for t in range(trials):
        arena.draw(rng)
        loops = arena.count_loops()
        counts[t] = loops
        total += loops
    return total, counts


def _run_chunk(n: int, trials: int, seed_seq: np.random.SeedSequence) -> Tuple[int, List[int]]:
    return _run_trials(n, trials, np.random.default_rng(seed_seq))


def _chunk_sizes(trials: int, workers: int) -> List[int]:
    base, extra = divmod(trials, workers)
    sizes = [base + (1 if k < extra else 0) for k in range(workers)]
    return [size for size in sizes if size > 0]


def simulate_loops(
    n: int,
    trials: int,
    *,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    workers: int = 1,
) -> SimulationSummary:
    """Estimate the expected number of loops for ``n`` noodles.

    Parameters
    ----------
    n:
        Number of noodles, at least one.
    trials:
        Number of independent pairings to draw, at least one.
    seed:
        Seed for a fresh ``numpy.random.default_rng``.  Ignored when ``rng``
        is given, and then not recorded in the summary.
    rng:
        Random source owned by the caller; it advances across all trials.
    workers:
        Number of processes.  Trials are split into contiguous chunks, each
        with its own spawned seed sequence, and merged back in chunk order.

    Returns
    -------
    SimulationSummary
        Total loop count, empirical expectation and the per-trial counts in
        trial order.
    """

    if n < 1:
        raise ValueError("number of noodles must be at least 1")
    if trials < 1:
        raise ValueError("number of trials must be at least 1")
    if workers < 1:
        raise ValueError("number of workers must be at least 1")

    logger.info("Simulating %d trials with %d noodles (%d worker(s))", trials, n, workers)
    recorded_seed = seed if rng is None else None

    if workers == 1:
        if rng is None:
            rng = np.random.default_rng(seed)
        total, counts = _run_trials(n, trials, rng)
    else:
        if rng is not None:
            root = np.random.SeedSequence(int(rng.integers(2**63)))
        else:
            root = np.random.SeedSequence(seed)
        sizes = _chunk_sizes(trials, workers)
        children = root.spawn(len(sizes))
        total = 0
        counts = []
        with ProcessPoolExecutor(max_workers=len(sizes)) as pool:
            futures = [
                pool.submit(_run_chunk, n, size, child)
                for size, child in zip(sizes, children)
            ]
            for future in futures:
                chunk_total, chunk_counts = future.result()
                total += chunk_total
                counts.extend(chunk_counts)

    expected = total / trials
    logger.debug("Total loops %d over %d trials (mean %.4f)", total, trials, expected)
    return SimulationSummary(
        noodles=n,
        trials=trials,
        total_loops=total,
        expected_loops=expected,
        per_trial_loop_counts=tuple(counts),
        seed=recorded_seed,
    )


# -------------------------
# Aggregation
# -------------------------
def loop_count_frequencies(counts: Iterable[int]) -> Dict[int, int]:
    """Number of trials for each observed loop count, ordered by loop count."""

    freq = Counter(int(c) for c in counts)
    return {k: freq[k] for k in sorted(freq)}


def expected_loops_exact(n: int) -> float:
    """Exact expectation ``sum_{k=1}^{n} 1 / (2k - 1)``."""

    if n < 0:
        raise ValueError("number of noodles must be non-negative")
    return float(sum(1.0 / (2 * k - 1) for k in range(1, n + 1)))


def format_report(summary: SimulationSummary) -> str:
    lines = [
        f"Noodles: {summary.noodles}",
        f"Trials: {summary.trials}",
        f"Expected loops: {summary.expected_loops:.4f}",
        f"Exact expectation: {expected_loops_exact(summary.noodles):.4f}",
    ]
    return "\n".join(lines)


# -------------------------
# Run export
# -------------------------
def export_simulation_run(
    summary: SimulationSummary,
    *,
    run_id: str,
    metadata: Optional[Dict[str, object]] = None,
) -> Dict[str, object]:
    """Package a finished simulation for persistence and plotting."""

    frequencies = loop_count_frequencies(summary.per_trial_loop_counts)
    data: Dict[str, object] = {
        'run_id': run_id,
        'noodles': summary.noodles,
        'trials': summary.trials,
        'seed': summary.seed,
        'total_loops': summary.total_loops,
        'expected_loops': summary.expected_loops,
        'expected_loops_exact': expected_loops_exact(summary.noodles),
        'frequencies': {str(k): v for k, v in frequencies.items()},
        'per_trial_loop_counts': list(summary.per_trial_loop_counts),
    }
    if metadata:
        data.update(metadata)
    return data


def save_simulation_run(
    json_path: str,
    run_data: Dict[str, object],
    *,
    append: bool = True,
) -> None:
    """Persist run data to a JSON list, appending to existing runs by default."""

    runs: List[Dict[str, object]] = []
    if append and os.path.exists(json_path):
        try:
            runs = load_simulation_runs(json_path)
        except json.JSONDecodeError:
            logger.warning("Replacing unreadable run archive %s", json_path)

    runs.append(run_data)

    with open(json_path, 'w') as fh:
        json.dump(runs, fh, indent=2)


def load_simulation_runs(json_path: str) -> List[Dict[str, object]]:
    """Read a run archive; a single stored run is returned as a one-item list."""

    with open(json_path, 'r') as fh:
        data = json.load(fh)
    if isinstance(data, list):
        return data
    return [data] if data else []


def frequencies_from_run(run_data: Dict[str, object]) -> Dict[int, int]:
    """Read the loop-count table of a saved run, rebuilding it if absent."""

    raw = run_data.get('frequencies')
    if raw:
        return {int(k): int(v) for k, v in sorted(raw.items(), key=lambda kv: int(kv[0]))}
    counts: Sequence[int] = run_data.get('per_trial_loop_counts', []) or []
    return loop_count_frequencies(counts)


__all__ = [
    "CHECK_INVARIANTS",
    "MatchingArena",
    "SimulationSummary",
    "count_loops",
    "expected_loops_exact",
    "export_simulation_run",
    "format_matching",
    "format_report",
    "frequencies_from_run",
    "load_simulation_runs",
    "loop_components",
    "loop_count_frequencies",
    "matching_pairs",
    "noodle_trial",
    "random_matching",
    "save_simulation_run",
    "simulate_loops",
    "verify_matching",
]
