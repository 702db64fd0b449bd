#!/usr/bin/env python3
"""Run the noodle loop simulation, print the estimate and plot the distribution."""

from __future__ import annotations

import argparse
import logging
import uuid
from typing import List, Optional

import numpy as np

from noodle_core import (
    DEFAULT_NOODLES,
    DEFAULT_TRIALS,
    export_simulation_run,
    format_matching,
    format_report,
    random_matching,
    save_simulation_run,
    simulate_loops,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Monte Carlo estimate of loops formed by tying noodle ends")
    parser.add_argument("--noodles", type=int, default=DEFAULT_NOODLES, help="Number of noodles")
    parser.add_argument("--trials", type=int, default=DEFAULT_TRIALS, help="Number of random pairings")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes")
    parser.add_argument("--output", type=str, default="loop_histogram.png", help="Histogram image path")
    parser.add_argument("--json", type=str, default=None, help="Append the run to this JSON archive")
    parser.add_argument("--no-plot", action="store_true", help="Skip the histogram")
    parser.add_argument("--print-matching", action="store_true", help="Print one sample pairing matrix")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.print_matching:
        print(format_matching(random_matching(args.noodles, np.random.default_rng(args.seed))))

    summary = simulate_loops(args.noodles, args.trials, seed=args.seed, workers=args.workers)
    print(format_report(summary))

    if not args.no_plot:
        from noodle_visualization import plot_loop_histogram

        path = plot_loop_histogram(
            summary.per_trial_loop_counts,
            args.output,
            title=f"Loop Count Distribution (noodles={summary.noodles})",
        )
        print(f"Histogram saved to {path}")

    if args.json:
        run_data = export_simulation_run(
            summary,
            run_id=uuid.uuid4().hex[:8],
            metadata={'workers': args.workers},
        )
        save_simulation_run(args.json, run_data)
        print(f"Run appended to {args.json}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
