# src/copula_gof/demo.py
from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from typing import Any, Dict, Optional

import pandas as pd

from .analyzer import AnalysisResults, format_results
from .config import resolve_config
from .core import analyze_dataframe, results_to_dict, results_to_frame, run_demo_scenarios
from .errors import CopulaGofError


def format_summary(res: AnalysisResults) -> str:
    lines = []
    lines.append("=" * 76)
    lines.append("copula-gof — Summary")
    lines.append("=" * 76)
    lines.append(f"Pairs                     : {res.n_obs}")
    lines.append(f"Scale type                : {res.ties['scale_type']}")
    lines.append(f"Kendall's tau (empirical) : {res.dependence['kendall_tau']:.3f}")
    lines.append(f"Selected family           : {res.best_family.value}")
    lines.append("")
    lines.append(format_results(res))
    lines.append("=" * 76)
    return "\n".join(lines)


def write_csv(res: AnalysisResults, path: str) -> None:
    """Write one row per requested family."""
    frame = results_to_frame(res)
    frame.to_csv(path, index=False, quoting=csv.QUOTE_MINIMAL)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if args.families:
        out["families"] = [f.strip() for f in args.families.split(",") if f.strip()]
    if args.seed is not None:
        out["seed"] = args.seed
    if args.min_n is not None:
        out["min_sample_size"] = args.min_n
    gof: Dict[str, Any] = {}
    if args.n_boot is not None:
        gof["n_bootstrap"] = args.n_boot
    if args.statistic is not None:
        gof["statistic"] = args.statistic
    if args.timeout is not None:
        gof["timeout"] = args.timeout
    if gof:
        out["gof"] = gof
    parallel: Dict[str, Any] = {}
    if args.workers is not None:
        parallel["workers"] = args.workers
    if args.family_workers is not None:
        parallel["family_workers"] = args.family_workers
    if parallel:
        out["parallel"] = parallel
    return out


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="python -m copula_gof.demo",
        description="Select copula families for paired scores and test their fit by parametric bootstrap.",
    )
    p.add_argument("--csv", default=None, help="Path to a CSV file with one row per score pair.")
    p.add_argument("--x-col", default=None, help="Column with prior scores.")
    p.add_argument("--y-col", default=None, help="Column with current scores.")
    p.add_argument("--scenarios", action="store_true", help="Run the synthetic known-truth scenarios instead.")
    p.add_argument("--config", default=None, help="Optional YAML configuration file.")
    p.add_argument("--families", default=None, help="Comma-separated family list (e.g. gaussian,t,clayton).")
    p.add_argument("--n-boot", type=int, default=None, help="Bootstrap replicates per family (0 skips GoF).")
    p.add_argument("--statistic", choices=["kendall_cvm", "rosenblatt_cvm"], default=None,
                   help="GoF statistic (default: kendall_cvm).")
    p.add_argument("--workers", type=int, default=None, help="Worker budget (-1 for all cores).")
    p.add_argument("--family-workers", type=int, default=None, help="Families tested concurrently.")
    p.add_argument("--timeout", type=float, default=None, help="Per-family bootstrap timeout in seconds.")
    p.add_argument("--min-n", type=int, default=None, help="Minimum number of pairs (default: 100).")
    p.add_argument("--seed", type=int, default=None, help="Root random seed.")
    p.add_argument("--out-csv", default=None, help="Optional path to write the per-family CSV.")
    p.add_argument("--out-json", default=None, help="Optional path to write the full results as JSON.")
    p.add_argument("--outdir", default=None, help="Output directory for --scenarios.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return p.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = resolve_config(args.config, _overrides(args))
    except (CopulaGofError, ValueError) as e:
        sys.stderr.write(f"[copula_gof.demo] Invalid configuration: {e}\n")
        return 2

    if args.scenarios:
        df, csv_path = run_demo_scenarios(
            outdir=args.outdir,
            random_seed=cfg["seed"] if cfg["seed"] is not None else 42,
            n_bootstrap=cfg["gof"]["n_bootstrap"],
            workers=cfg["parallel"]["workers"],
            families=cfg["families"],
        )
        print(df.to_string(index=False))
        if csv_path:
            print(f"\nScenario summary saved to: {csv_path}")
        return 0

    if not (args.csv and args.x_col and args.y_col):
        sys.stderr.write("[copula_gof.demo] Error: --csv, --x-col and --y-col are required (or use --scenarios)\n")
        return 2

    try:
        df = pd.read_csv(args.csv)
        res = analyze_dataframe(df, args.x_col, args.y_col, config=cfg)
    except (CopulaGofError, ValueError, KeyError, OSError) as e:
        # Provide a clear message and a non-zero exit code.
        sys.stderr.write(f"[copula_gof.demo] Error: {e}\n")
        return 2

    print(format_summary(res))

    try:
        if args.out_csv:
            write_csv(res, args.out_csv)
            print(f"\nWrote per-family CSV → {args.out_csv}")
        if args.out_json:
            with open(args.out_json, "w", encoding="utf-8") as f:
                json.dump(results_to_dict(res), f, indent=2)
            print(f"Wrote results JSON → {args.out_json}")
    except OSError as e:
        sys.stderr.write(f"[copula_gof.demo] Failed to write output: {e}\n")
        return 3

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
