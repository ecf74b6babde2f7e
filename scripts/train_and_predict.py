"""Train a k-mer spectrum SVM on NMI and background windows, then scan a genome."""

from __future__ import annotations

import argparse
import sys

from nmiSVM.cli import (
    add_config_argument,
    add_runtime_arguments,
    add_training_arguments,
    build_config,
    report_error,
)
from nmiSVM.errors import ConvergenceError, InvalidInputError
from nmiSVM.pipeline import run_pipeline


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for the full training and prediction pipeline."""
    parser = argparse.ArgumentParser(
        description="Train a spectrum SVM on NMI windows and predict NMIs genome-wide.",
    )
    add_config_argument(parser)
    add_training_arguments(parser)
    add_runtime_arguments(parser)
    parser.add_argument("-p", "--predictseqs", help="Fasta file to do predictions on")
    parser.add_argument(
        "-o", "--output-dir", dest="output_dir", help="Directory for the model and prediction tables"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run both pipeline phases and write the model and prediction tables."""
    args = build_parser().parse_args(argv)
    try:
        result = run_pipeline(build_config(args))
    except (InvalidInputError, ConvergenceError, OSError) as exc:
        return report_error(exc)

    sys.stderr.write(
        f"Wrote {result.predictions.all_predictions_path} and "
        f"{result.predictions.positive_windows_path}\n"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
