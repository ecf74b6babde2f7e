"""Argument helpers shared by the command-line scripts."""

from __future__ import annotations

import argparse
import sys
from dataclasses import asdict

from nmiSVM.pipeline import PipelineConfig, read_config_overrides
from nmiSVM.spectrum_core.kmers import Alphabet
from nmiSVM.spectrum_core.svm import KernelStrategy


def add_config_argument(parser: argparse.ArgumentParser) -> None:
    """Add the optional INI config file flag."""
    parser.add_argument(
        "--config",
        default=None,
        help="Optional INI file with an [nmiSVM] section; explicit flags override it.",
    )


def add_training_arguments(parser: argparse.ArgumentParser) -> None:
    """Add training-phase options; unset flags stay ``None`` so config files can fill them."""
    parser.add_argument("-t", "--trainseqs", help="Full path to a fasta format genome")
    parser.add_argument("-f", "--foreground", help="A bed file with the locations of NMIs")
    parser.add_argument(
        "-b", "--background", help="A bed file with the locations of background sequences"
    )
    parser.add_argument("-c", "--c", dest="c_value", type=float, help="SVM soft margin penalty")
    parser.add_argument("-k", "--k", type=int, help="K-mer length")
    parser.add_argument(
        "-d", "--seed", type=int, help="Seed for the random generator used when subsampling"
    )
    parser.add_argument("--eps", type=float, help="SVM solver convergence tolerance")
    parser.add_argument(
        "--alphabet",
        choices=[alphabet.value for alphabet in Alphabet],
        help="Sequence alphabet for k-mer counting",
    )
    parser.add_argument(
        "--use-sign",
        dest="use_sign",
        action="store_true",
        default=None,
        help="Count k-mer presence instead of frequency",
    )
    parser.add_argument(
        "--normalize",
        action="store_true",
        default=None,
        help="Use the cosine-normalized spectrum kernel",
    )
    parser.add_argument("--max-iter", dest="max_iter", type=int, help="Solver iteration budget")
    parser.add_argument(
        "--kernel-strategy",
        dest="kernel_strategy",
        choices=[strategy.value for strategy in KernelStrategy],
        help="Precompute the Gram matrix, evaluate it implicitly, or pick by training size",
    )
    parser.add_argument(
        "--max-windows-per-class",
        dest="max_windows_per_class",
        type=int,
        help="Randomly subsample each training class to at most this many windows",
    )


def add_runtime_arguments(parser: argparse.ArgumentParser) -> None:
    """Add options shared by both phases."""
    parser.add_argument(
        "-w", "--window", type=int, help="Split the sequences into windows of this many bases"
    )
    parser.add_argument("-j", "--cores", type=int, help="Number of processes to use")
    parser.add_argument(
        "--batch-size",
        dest="batch_size",
        type=int,
        help="Windows read and scored per batch",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="verbose output [default is quiet running]",
    )


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Merge built-in defaults, the optional config file and explicit flags."""
    values = asdict(PipelineConfig())
    if getattr(args, "config", None):
        values.update(read_config_overrides(args.config))
    for key in values:
        flag_value = getattr(args, key, None)
        if flag_value is not None:
            values[key] = flag_value
    return PipelineConfig(**values)


def report_error(exc: BaseException) -> int:
    """Write a fatal error to stderr and return the process exit status."""
    sys.stderr.write(f"** {exc}\n")
    return 1
