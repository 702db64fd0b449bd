"""Plotting helpers for noodle loop simulations.

The helpers here only consume finished results: per-trial loop counts, the
run dictionaries produced by :mod:`noodle_core`, or a single pairing matrix.
Nothing in :mod:`noodle_core` depends on this module.
"""

from __future__ import annotations

import os
from typing import Dict, Iterable, List, Mapping, Optional, Union

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
from matplotlib.lines import Line2D

from noodle_core import (
    frequencies_from_run,
    load_simulation_runs,
    loop_components,
    loop_count_frequencies,
    matching_pairs,
)


def _histogram_values(frequencies: Mapping[int, int]) -> List[int]:
    # index 0 is dropped: no pairing has zero loops
    max_loops = max(frequencies) if frequencies else 0
    return [int(frequencies.get(k, 0)) for k in range(1, max_loops + 1)]


def plot_loop_histogram(
    counts: Union[Iterable[int], Mapping[int, int]],
    output_path: str,
    *,
    title: Optional[str] = None,
    dpi: int = 150,
) -> str:
    """Save a bar chart of trials per loop count.

    Parameters
    ----------
    counts:
        Either the per-trial loop counts or an already aggregated
        ``{loop_count: trials}`` mapping.
    output_path:
        Image file to write; the format follows the extension.
    title:
        Figure title.
    dpi:
        Resolution for raster formats.

    Returns
    -------
    str
        ``output_path``.
    """

    if isinstance(counts, Mapping):
        frequencies = {int(k): int(v) for k, v in counts.items()}
    else:
        frequencies = loop_count_frequencies(counts)
    values = _histogram_values(frequencies)
    labels = [str(k) for k in range(1, len(values) + 1)]

    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.bar(labels, values, color='steelblue', edgecolor='black', linewidth=0.5)
    ax.set_xlabel('Loop count')
    ax.set_ylabel('Frequency')
    if title:
        ax.set_title(title)
    fig.tight_layout()
    fig.savefig(output_path, dpi=dpi)
    plt.close(fig)
    return output_path


def matching_to_graph(matrix: np.ndarray) -> nx.MultiGraph:
    """One node per noodle and one edge per tie; self ties become self-loops."""

    graph = nx.MultiGraph()
    graph.add_nodes_from(range(matrix.shape[0]))
    graph.add_edges_from(matching_pairs(matrix))
    return graph


def draw_matching(
    matrix: np.ndarray,
    output_path: str,
    *,
    seed: Optional[int] = None,
    dpi: int = 150,
) -> str:
    """Render one pairing with each loop in its own colour."""

    graph = matching_to_graph(matrix)
    components = loop_components(matrix)
    cmap = plt.get_cmap('tab20')
    node_colors: Dict[int, tuple] = {}
    for idx, component in enumerate(components):
        for node in component:
            node_colors[node] = cmap(idx % cmap.N)

    positions = nx.spring_layout(graph, seed=seed)

    plt.figure(figsize=(8, 8))
    ax = plt.gca()
    ax.set_axis_off()

    self_tied = {u for u, v in graph.edges() if u == v}
    nx.draw_networkx_nodes(
        graph,
        positions,
        node_color=[node_colors.get(node, 'lightblue') for node in graph.nodes()],
        node_size=300,
        edgecolors=['red' if node in self_tied else 'black' for node in graph.nodes()],
        linewidths=[2.0 if node in self_tied else 0.5 for node in graph.nodes()],
    )
    simple_edges = [(u, v) for u, v in graph.edges() if u != v]
    nx.draw_networkx_edges(graph, positions, edgelist=simple_edges, edge_color='gray', width=1.5)
    nx.draw_networkx_labels(graph, positions, font_size=8)

    legend_elements = [
        Line2D([0], [0], color='gray', lw=1.5, label='Tied ends'),
    ]
    if self_tied:
        legend_elements.append(
            Line2D([0], [0], marker='o', color='w', label='Self-tied noodle',
                   markerfacecolor='lightblue', markeredgecolor='red', markersize=10)
        )
    ax.legend(handles=legend_elements, loc='best')
    ax.set_title(f"{len(components)} loop(s) from {matrix.shape[0]} noodles")

    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    plt.tight_layout()
    plt.savefig(output_path, dpi=dpi)
    plt.close()
    return output_path


def plot_runs_from_file(
    json_path: str,
    output_root: str = 'loop_histograms',
    *,
    figure_format: str = 'png',
    dpi: int = 150,
    skip_existing: bool = True,
) -> Dict[str, str]:
    """Render the histogram of every run stored in a JSON archive."""

    os.makedirs(output_root, exist_ok=True)
    outputs: Dict[str, str] = {}

    for idx, run_data in enumerate(load_simulation_runs(json_path)):
        run_id = str(run_data.get('run_id', idx))
        path = os.path.join(output_root, f'run_{run_id}.{figure_format}')
        if not (skip_existing and os.path.exists(path)):
            plot_loop_histogram(
                frequencies_from_run(run_data),
                path,
                title=f"Loop Count Distribution (noodles={run_data.get('noodles', '?')})",
                dpi=dpi,
            )
        outputs[run_id] = path
    return outputs


__all__ = [
    "draw_matching",
    "matching_to_graph",
    "plot_loop_histogram",
    "plot_runs_from_file",
]
