"""Score every window of a genome with a persisted spectrum SVM."""

from __future__ import annotations

import argparse
from pathlib import Path

from nmiSVM.cli import add_runtime_arguments, report_error
from nmiSVM.errors import InvalidInputError
from nmiSVM.pipeline import run_prediction
from nmiSVM.spectrum_core.model import load_spectrum_model
from nmiSVM.spectrum_core.sequences import DEFAULT_BATCH_SIZE


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for genome-wide prediction."""
    parser = argparse.ArgumentParser(
        description="Predict NMI windows genome-wide from a trained spectrum SVM bundle.",
    )
    parser.add_argument(
        "--model",
        required=True,
        help="Model bundle path: <name>.skops or <name>.metadata.json",
    )
    parser.add_argument("-p", "--predictseqs", required=True, help="Fasta file to do predictions on")
    parser.add_argument(
        "-o",
        "--output-dir",
        dest="output_dir",
        type=Path,
        default=Path("."),
        help="Directory for preds-all.csv and preds-windows.csv",
    )
    add_runtime_arguments(parser)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Load a model bundle and write the genome-wide prediction tables."""
    args = build_parser().parse_args(argv)
    try:
        model = load_spectrum_model(args.model)
        window_size = args.window or model.metadata.window_size
        if not window_size or window_size <= 0:
            raise InvalidInputError(
                "Model metadata has no window size; pass one with --window"
            )
        run_prediction(
            model,
            args.predictseqs,
            args.output_dir,
            window_size=window_size,
            n_jobs=args.cores or 1,
            batch_size=args.batch_size or DEFAULT_BATCH_SIZE,
            verbose=bool(args.verbose),
        )
    except (ValueError, OSError) as exc:
        return report_error(exc)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
