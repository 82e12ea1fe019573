"""Simulate nudge delivery for a facts snapshot and report metrics."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from nudge_engine.adapters import facts_json
from nudge_engine.config import configure_logging, load_config
from nudge_engine.metrics import compute_delivery_metrics
from nudge_engine.simulation import simulate


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate nudge scheduling over several days")
    parser.add_argument("--facts", required=True, help="Path to a JSON facts snapshot")
    parser.add_argument("--config", help="Path to a JSON engine config")
    parser.add_argument("--days", type=int, default=30)
    parser.add_argument("--open-probability", type=float, default=0.5)
    parser.add_argument("--foreground-probability", type=float, default=0.6)
    parser.add_argument("--show-up-probability", type=float, default=0.3)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--out", help="Optional path to write the JSON report")
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config.log_level)

    facts = facts_json.parse(args.facts)
    log = simulate(
        args.days,
        facts,
        open_probability=args.open_probability,
        foreground_probability=args.foreground_probability,
        show_up_probability=args.show_up_probability,
        seed=args.seed,
        config=config,
    )
    report = compute_delivery_metrics(log)
    report["days"] = args.days
    report["seed"] = args.seed

    print(json.dumps(report, indent=2))

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        print(f"Saved simulation report to {out_path}")


if __name__ == "__main__":
    main()
