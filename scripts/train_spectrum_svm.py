"""Train a spectrum SVM on NMI and background windows and persist it with skops metadata."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from nmiSVM.cli import (
    add_config_argument,
    add_runtime_arguments,
    add_training_arguments,
    build_config,
    report_error,
)
from nmiSVM.errors import ConvergenceError, InvalidInputError
from nmiSVM.pipeline import model_paths, train_model


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for spectrum SVM training."""
    parser = argparse.ArgumentParser(
        description="Train a k-mer spectrum SVM from foreground/background BED windows.",
    )
    add_config_argument(parser)
    add_training_arguments(parser)
    add_runtime_arguments(parser)
    parser.add_argument(
        "-o", "--output-dir", dest="output_dir", help="Directory for the default model bundle"
    )
    parser.add_argument(
        "--artifact",
        type=Path,
        default=None,
        help="Output .skops model path [default: OUTPUT_DIR/model.skops]",
    )
    parser.add_argument(
        "--metadata",
        type=Path,
        default=None,
        help="Output metadata JSON path [default: OUTPUT_DIR/model.metadata.json]",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Train and persist one spectrum SVM model bundle."""
    args = build_parser().parse_args(argv)
    try:
        config = build_config(args)
        config.validate(train=True, predict=False)
        default_artifact, default_metadata = model_paths(config.output_dir)
        artifact_path = args.artifact or default_artifact
        metadata_path = args.metadata or default_metadata
        model = train_model(config)
        model.save(artifact_path=artifact_path, metadata_path=metadata_path)
    except (InvalidInputError, ConvergenceError, OSError) as exc:
        return report_error(exc)

    sys.stderr.write(
        f"Wrote model with {model.metadata.n_support} support vectors to {artifact_path}\n"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
