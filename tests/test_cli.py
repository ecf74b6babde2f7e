from __future__ import annotations

import argparse
import csv
import importlib.util
import os
import subprocess
import sys
from pathlib import Path

import pytest

from nmiSVM.cli import add_config_argument, add_runtime_arguments, add_training_arguments, build_config
from tests.helpers.genome_fixture_builder import GenomeFixture, build_genome_fixture

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS = [
    "scripts/train_and_predict.py",
    "scripts/train_spectrum_svm.py",
    "scripts/predict_spectrum_svm.py",
]


def run_script(script_path: str, *args: str, cwd: Path | None = None) -> subprocess.CompletedProcess:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, str(ROOT / script_path), *args],
        cwd=cwd,
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )


def load_script_module(module_name: str, relative_path: str):
    spec = importlib.util.spec_from_file_location(module_name, ROOT / relative_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    spec.loader.exec_module(module)
    return module


def _training_flags(genome: GenomeFixture) -> list[str]:
    return [
        "-t",
        str(genome.train_fasta),
        "-f",
        str(genome.foreground_bed),
        "-b",
        str(genome.background_bed),
        "-w",
        str(genome.window),
        "-k",
        "2",
    ]


def _merged_calls(path: Path) -> list[tuple[str, int, int]]:
    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle, delimiter="\t"))
    assert rows[0] == ["chrom", "start", "end"]
    return [(chrom, int(start), int(end)) for chrom, start, end in rows[1:]]


@pytest.mark.smoke
@pytest.mark.parametrize("script_path", SCRIPTS)
def test_script_help_runs(script_path: str) -> None:
    result = run_script(script_path, "--help")
    assert result.returncode == 0, result.stderr
    assert "usage" in result.stdout.lower()


@pytest.mark.unit
def test_explicit_flags_override_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "run.ini"
    config_path.write_text("[nmiSVM]\nk = 4\nwindow = 300\nc = 3.0\n", encoding="utf-8")
    parser = argparse.ArgumentParser()
    add_config_argument(parser)
    add_training_arguments(parser)
    add_runtime_arguments(parser)

    config = build_config(parser.parse_args(["--config", str(config_path), "-k", "5", "--use-sign"]))

    assert config.k == 5
    assert config.window == 300
    assert config.c_value == 3.0
    assert config.use_sign is True
    assert config.normalize is False
    assert config.cores == 1


@pytest.mark.integration
def test_train_and_predict_end_to_end(tmp_path: Path) -> None:
    genome = build_genome_fixture(tmp_path)
    output_dir = tmp_path / "out"

    result = run_script(
        "scripts/train_and_predict.py",
        *_training_flags(genome),
        "-p",
        str(genome.predict_fasta),
        "-o",
        str(output_dir),
        "-j",
        "2",
        "-v",
    )

    assert result.returncode == 0, result.stderr
    assert "Number of windows in each training class" in result.stderr
    assert (output_dir / "model.skops").exists()
    assert (output_dir / "model.metadata.json").exists()
    assert (output_dir / "preds-all.csv").exists()
    assert _merged_calls(output_dir / "preds-windows.csv") == list(genome.expected_positive_intervals)


@pytest.mark.integration
def test_train_then_predict_with_saved_bundle(tmp_path: Path) -> None:
    genome = build_genome_fixture(tmp_path)
    model_dir = tmp_path / "model"
    scan_dir = tmp_path / "scan"

    train = load_script_module("script_train_spectrum_svm", "scripts/train_spectrum_svm.py")
    predict = load_script_module("script_predict_spectrum_svm", "scripts/predict_spectrum_svm.py")

    assert train.main([*_training_flags(genome), "-o", str(model_dir)]) == 0
    assert (
        predict.main(
            [
                "--model",
                str(model_dir / "model.metadata.json"),
                "-p",
                str(genome.predict_fasta),
                "-o",
                str(scan_dir),
                "--batch-size",
                "2",
            ]
        )
        == 0
    )
    assert _merged_calls(scan_dir / "preds-windows.csv") == list(genome.expected_positive_intervals)


@pytest.mark.smoke
def test_missing_training_input_exits_with_error(tmp_path: Path) -> None:
    genome = build_genome_fixture(tmp_path)

    result = run_script(
        "scripts/train_and_predict.py",
        *_training_flags(genome),
        "-p",
        str(tmp_path / "absent.fa"),
        "-o",
        str(tmp_path / "out"),
    )

    assert result.returncode == 1
    assert "** Input file not found" in result.stderr
    assert not (tmp_path / "out" / "model.skops").exists()


@pytest.mark.smoke
def test_invalid_window_exits_with_error(tmp_path: Path) -> None:
    genome = build_genome_fixture(tmp_path)

    result = run_script(
        "scripts/train_spectrum_svm.py",
        *_training_flags(genome)[:-4],
        "-w",
        "0",
        "-o",
        str(tmp_path / "out"),
    )

    assert result.returncode == 1
    assert "Window size must be positive" in result.stderr


@pytest.mark.smoke
def test_predict_rejects_unknown_model_path(tmp_path: Path) -> None:
    predict = load_script_module("script_predict_spectrum_svm", "scripts/predict_spectrum_svm.py")
    fasta = tmp_path / "genome.fa"
    fasta.write_text(">chr1\nACGT\n", encoding="utf-8")

    assert predict.main(["--model", str(tmp_path / "model.pkl"), "-p", str(fasta)]) == 1


@pytest.mark.smoke
def test_config_with_percent_path_reports_missing_file(tmp_path: Path) -> None:
    config_path = tmp_path / "run.ini"
    config_path.write_text("[nmiSVM]\ntrainseqs = /data/100%/mm9.fa\n", encoding="utf-8")

    result = run_script("scripts/train_spectrum_svm.py", "--config", str(config_path))

    assert result.returncode == 1
    assert "** Input file not found: /data/100%/mm9.fa" in result.stderr
    assert "Traceback" not in result.stderr
