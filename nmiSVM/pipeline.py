"""Two-phase NMI pipeline: train a spectrum SVM on labeled windows, then scan a genome."""

from __future__ import annotations

import configparser
import csv
import sys
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, fields
from pathlib import Path

import numpy as np

from nmiSVM.errors import InvalidInputError
from nmiSVM.spectrum_core.intervals import (
    GenomicInterval,
    Window,
    iter_windows,
    load_bed_intervals,
    merge_intervals,
    window_intervals,
)
from nmiSVM.spectrum_core.kmers import SpectrumParams
from nmiSVM.spectrum_core.model import Prediction, SpectrumSvmModel
from nmiSVM.spectrum_core.sequences import (
    DEFAULT_BATCH_SIZE,
    fetch_sequences,
    iter_window_batches,
    reference_intervals,
)
from nmiSVM.spectrum_core.svm import KernelStrategy, SolverParams, WindowLabel

CONFIG_SECTION = "nmiSVM"
MODEL_STEM = "model"
ALL_PREDICTIONS_NAME = "preds-all.csv"
POSITIVE_WINDOWS_NAME = "preds-windows.csv"


@dataclass
class PipelineConfig:
    """Options of one training + prediction run."""

    trainseqs: str = "mm9.fa"
    foreground: str = "GSM1064678_mm_testes_nmi.bed"
    background: str = "not-nmis.bed"
    c_value: float = 1.0
    k: int = 2
    window: int = 750
    predictseqs: str = "hg19.fa"
    cores: int = 1
    seed: int = 531
    eps: float = 1e-2
    alphabet: str = "SNP"
    use_sign: bool = False
    normalize: bool = False
    max_iter: int = 1_000_000
    kernel_strategy: str = KernelStrategy.AUTO.value
    max_windows_per_class: int | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    output_dir: str = "."
    verbose: bool = False

    def spectrum_params(self) -> SpectrumParams:
        """Kernel parameters derived from this configuration."""
        return SpectrumParams(
            k=self.k,
            alphabet=self.alphabet,
            use_sign=self.use_sign,
            normalize=self.normalize,
        )

    def solver_params(self) -> SolverParams:
        """Solver parameters derived from this configuration."""
        return SolverParams(c_value=self.c_value, eps=self.eps, max_iter=self.max_iter)

    def validate(self, *, train: bool = True, predict: bool = True) -> None:
        """Check numeric ranges and input-file existence for the requested phases."""
        if self.window <= 0:
            raise InvalidInputError(f"Window size must be positive, got {self.window}")
        if self.cores == 0 or self.cores < -1:
            raise InvalidInputError(f"cores must be a positive integer or -1, got {self.cores}")
        if self.batch_size < 1:
            raise InvalidInputError(f"batch_size must be positive, got {self.batch_size}")
        if self.max_windows_per_class is not None and self.max_windows_per_class < 1:
            raise InvalidInputError(
                f"max_windows_per_class must be positive, got {self.max_windows_per_class}"
            )
        try:
            KernelStrategy(self.kernel_strategy)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown kernel strategy '{self.kernel_strategy}'") from exc
        self.spectrum_params()
        self.solver_params()

        required = []
        if train:
            required += [self.trainseqs, self.foreground, self.background]
        if predict:
            required.append(self.predictseqs)
        for path in required:
            if not Path(path).exists():
                raise FileNotFoundError(f"Input file not found: {path}")


_CONFIG_GETTERS = {bool: "getboolean", int: "getint", float: "getfloat"}


def _field_kind(name: str) -> type:
    """Scalar type used to parse one config field."""
    defaults = PipelineConfig()
    if name == "max_windows_per_class":
        return int
    return type(getattr(defaults, name))


def read_config_overrides(path: str | Path) -> dict[str, object]:
    """Read the ``[nmiSVM]`` section of an INI file into typed option values."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(config_path, encoding="utf-8")
    except configparser.Error as exc:
        raise InvalidInputError(f"{config_path}: {exc}") from exc
    if CONFIG_SECTION not in parser:
        raise InvalidInputError(f"{config_path} has no [{CONFIG_SECTION}] section")
    section = parser[CONFIG_SECTION]

    known = {item.name for item in fields(PipelineConfig)}
    overrides: dict[str, object] = {}
    for key in section:
        name = key.replace("-", "_")
        if name == "c":
            name = "c_value"
        if name not in known:
            raise InvalidInputError(f"{config_path}: unknown option '{key}'")
        getter = getattr(section, _CONFIG_GETTERS.get(_field_kind(name), "get"))
        try:
            overrides[name] = getter(key)
        except ValueError as exc:
            raise InvalidInputError(f"{config_path}: invalid value for '{key}': {exc}") from exc
    return overrides


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    """Build a pipeline configuration from an INI file, defaults filling the gaps."""
    return PipelineConfig(**read_config_overrides(path))


def write_status(status: str, verbose: bool = True) -> None:
    """Pretty print a phase banner to stderr."""
    if not verbose:
        return
    n = len(status) + 2
    sys.stderr.write("%s\n" % ("-" * n))
    sys.stderr.write(" %s \n" % status)
    sys.stderr.write("%s\n" % ("-" * n))


@dataclass
class TrainingSet:
    """Labeled training windows with their sequences."""

    windows: list[Window]
    sequences: list[str]
    labels: list[WindowLabel]

    def class_counts(self) -> dict[WindowLabel, int]:
        """Number of windows in each training class."""
        return {label: self.labels.count(label) for label in WindowLabel}


def _subsample(windows: list[Window], limit: int | None, rng: np.random.Generator) -> list[Window]:
    """Keep at most ``limit`` windows, chosen uniformly, in their original order."""
    if limit is None or len(windows) <= limit:
        return windows
    keep = np.sort(rng.choice(len(windows), size=limit, replace=False))
    return [windows[index] for index in keep]


def build_training_set(config: PipelineConfig, rng: np.random.Generator | None = None) -> TrainingSet:
    """Window the foreground and background BED intervals and fetch their sequences."""
    if rng is None:
        rng = np.random.default_rng(config.seed)

    per_class: list[tuple[WindowLabel, list[Window]]] = []
    for label, bed_path in (
        (WindowLabel.NMI, config.foreground),
        (WindowLabel.BACKGROUND, config.background),
    ):
        windows = window_intervals(load_bed_intervals(bed_path), config.window)
        if not windows:
            raise InvalidInputError(
                f"No {label.value} windows of {config.window} bases could be built from {bed_path}"
            )
        per_class.append((label, _subsample(windows, config.max_windows_per_class, rng)))

    windows = [window for _, class_windows in per_class for window in class_windows]
    labels = [label for label, class_windows in per_class for _ in class_windows]
    sequences = fetch_sequences(config.trainseqs, windows, batch_size=config.batch_size)
    training_set = TrainingSet(windows=windows, sequences=sequences, labels=labels)

    sys.stderr.write("Number of windows in each training class:\n")
    for label, count in training_set.class_counts().items():
        sys.stderr.write(f"  {label.value}: {count}\n")
    return training_set


def train_model(config: PipelineConfig, training_set: TrainingSet | None = None) -> SpectrumSvmModel:
    """Fit the spectrum SVM on the configured training windows."""
    if training_set is None:
        training_set = build_training_set(config)
    sys.stderr.write("Fitting model (this may take a while)... ")
    model = SpectrumSvmModel.train(
        training_set.sequences,
        training_set.labels,
        spectrum=config.spectrum_params(),
        solver=config.solver_params(),
        strategy=KernelStrategy(config.kernel_strategy),
        window_size=config.window,
        n_jobs=config.cores,
        verbose=config.verbose,
    )
    sys.stderr.write("done!\n")
    return model


def iter_genome_predictions(
    model: SpectrumSvmModel,
    fasta_path: str | Path,
    *,
    window_size: int,
    n_jobs: int = 1,
    batch_size: int = DEFAULT_BATCH_SIZE,
    verbose: bool = False,
) -> Iterator[Prediction]:
    """Score every full window of every FASTA record, one batch at a time."""
    windows = iter_windows(reference_intervals(fasta_path), window_size)
    for batch_windows, batch_sequences in iter_window_batches(fasta_path, windows, batch_size=batch_size):
        if verbose:
            first = batch_windows[0]
            sys.stderr.write(
                f"  scoring {len(batch_windows)} windows from {first.chrom}:{first.start}\n"
            )
        yield from model.predict(batch_windows, batch_sequences, n_jobs=n_jobs)


def predict_genome(
    model: SpectrumSvmModel,
    fasta_path: str | Path,
    *,
    window_size: int,
    n_jobs: int = 1,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[Prediction]:
    """Score every full window of the prediction genome."""
    return list(
        iter_genome_predictions(
            model,
            fasta_path,
            window_size=window_size,
            n_jobs=n_jobs,
            batch_size=batch_size,
        )
    )


def write_prediction_table(predictions: Iterable[Prediction], path: Path) -> list[GenomicInterval]:
    """Write every scored window as tab-delimited text; return the positive windows."""
    positives: list[GenomicInterval] = []
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, delimiter="\t", lineterminator="\n")
        writer.writerow(["chrom", "start", "end", "score"])
        for prediction in predictions:
            window = prediction.window
            writer.writerow([window.chrom, window.start, window.end, f"{prediction.score:.10g}"])
            if prediction.is_positive:
                positives.append(window)
    return positives


def write_interval_table(intervals: Iterable[GenomicInterval], path: Path) -> None:
    """Write intervals as tab-delimited ``chrom start end`` rows."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, delimiter="\t", lineterminator="\n")
        writer.writerow(["chrom", "start", "end"])
        for interval in intervals:
            writer.writerow([interval.chrom, interval.start, interval.end])


def model_paths(output_dir: str | Path) -> tuple[Path, Path]:
    """Artifact and metadata paths of the model bundle in ``output_dir``."""
    root = Path(output_dir)
    return root / f"{MODEL_STEM}.skops", root / f"{MODEL_STEM}.metadata.json"


@dataclass
class PredictionOutputs:
    """Files and calls produced by the prediction phase."""

    all_predictions_path: Path
    positive_windows_path: Path
    n_windows: int = 0
    positive_intervals: list[GenomicInterval] = field(default_factory=list)


def run_prediction(
    model: SpectrumSvmModel,
    fasta_path: str | Path,
    output_dir: str | Path,
    *,
    window_size: int,
    n_jobs: int = 1,
    batch_size: int = DEFAULT_BATCH_SIZE,
    verbose: bool = False,
) -> PredictionOutputs:
    """Scan a genome, stream all scores to disk and merge the positive windows."""
    root = Path(output_dir)
    outputs = PredictionOutputs(
        all_predictions_path=root / ALL_PREDICTIONS_NAME,
        positive_windows_path=root / POSITIVE_WINDOWS_NAME,
    )

    def counted(predictions: Iterator[Prediction]) -> Iterator[Prediction]:
        for prediction in predictions:
            outputs.n_windows += 1
            yield prediction

    sys.stderr.write("Predicting NMIs... ")
    positives = write_prediction_table(
        counted(
            iter_genome_predictions(
                model,
                fasta_path,
                window_size=window_size,
                n_jobs=n_jobs,
                batch_size=batch_size,
                verbose=verbose,
            )
        ),
        outputs.all_predictions_path,
    )
    sys.stderr.write("done!\n")
    outputs.positive_intervals = merge_intervals(positives)
    write_interval_table(outputs.positive_intervals, outputs.positive_windows_path)
    sys.stderr.write(
        f"Scored {outputs.n_windows} windows; {len(positives)} positive windows merged into "
        f"{len(outputs.positive_intervals)} intervals\n"
    )
    return outputs


@dataclass
class PipelineResult:
    """Everything a full pipeline run produced."""

    model: SpectrumSvmModel
    artifact_path: Path
    metadata_path: Path
    predictions: PredictionOutputs


def run_pipeline(config: PipelineConfig) -> PipelineResult:
    """Train on the labeled windows, persist the model, then scan the prediction genome."""
    config.validate()
    write_status("Training", config.verbose)
    model = train_model(config)
    artifact_path, metadata_path = model_paths(config.output_dir)
    model.save(artifact_path=artifact_path, metadata_path=metadata_path)
    sys.stderr.write(f"Wrote model to {artifact_path}\n")

    write_status("Predicting", config.verbose)
    predictions = run_prediction(
        model,
        config.predictseqs,
        config.output_dir,
        window_size=config.window,
        n_jobs=config.cores,
        batch_size=config.batch_size,
        verbose=config.verbose,
    )
    return PipelineResult(
        model=model,
        artifact_path=artifact_path,
        metadata_path=metadata_path,
        predictions=predictions,
    )
