#!/usr/bin/env python3
"""
Run a Weather Markov Forecast
=============================

Builds a transition matrix from a historical weather payload, simulates a
forward trajectory and prints the matrix, trajectory and statistics as JSON.

Usage:
    python scripts/run_forecast.py \
        --input data/london_history.json \
        --initial-state Sunny \
        --days 30 \
        --seed 7 \
        --output forecast.json

Exit codes:
    0 - forecast produced
    1 - engine error (error dict printed to stdout)
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from weather_config.settings_schema import load_validated_settings
from weather_core.exceptions import ConfigurationError, ValidationError
from weather_markov.engine import WeatherMarkovEngine

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Simulate weather with a first-order Markov chain")
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Historical weather JSON file (WeatherAPI history or list of {date, condition})"
    )
    parser.add_argument(
        "--initial-state",
        type=str,
        required=True,
        help="State for day 0 (e.g. Sunny, Rainy, Cloudy)"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=30,
        help="Number of days to simulate (default: 30)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="RNG seed for a reproducible trajectory (default: OS entropy)"
    )
    parser.add_argument(
        "--streaks",
        choices=["analytic", "empirical"],
        default=None,
        help="Source for average_streaks (default: from settings)"
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Also write the JSON result to this file"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging"
    )
    return parser.parse_args(argv)


def emit(payload, output=None):
    text = json.dumps(payload, indent=2, default=str)
    print(text)
    if output:
        out_path = Path(output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n", encoding="utf-8")
        logger.info(f"Wrote forecast to {out_path}")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    input_path = Path(args.input)
    try:
        raw = input_path.read_text(encoding="utf-8")
    except OSError as e:
        error = ValidationError("Cannot read input file", context={"path": str(input_path)}, cause=e)
        emit({"ok": False, "error": error.to_dict()})
        return 1

    try:
        settings = load_validated_settings()
    except ConfigurationError as e:
        emit({"ok": False, "error": e.to_dict()})
        return 1

    engine = WeatherMarkovEngine(settings=settings)
    result = engine.run_forecast(
        raw,
        initial_state=args.initial_state,
        days=args.days,
        seed=args.seed,
        streak_source=args.streaks or "",
    )

    emit(result.to_dict(), args.output if result.ok else None)
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
