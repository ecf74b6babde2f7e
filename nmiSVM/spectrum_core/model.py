"""Trained spectrum-SVM models: scoring, predictions and skops persistence."""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import scipy.sparse as sp
from joblib import Parallel, delayed

from nmiSVM.errors import DimensionMismatchError, InvalidInputError
from nmiSVM.spectrum_core.intervals import GenomicInterval
from nmiSVM.spectrum_core.kernel import DEFAULT_BLOCK_SIZE, kernel_matrix
from nmiSVM.spectrum_core.kmers import SpectrumFeatures, SpectrumParams, spectrum_features
from nmiSVM.spectrum_core.svm import (
    DEFAULT_MAX_PRECOMPUTED,
    KernelStrategy,
    SolverParams,
    WindowLabel,
    fit_svm,
    fit_svm_features,
)

SCHEMA_VERSION = "1"


@dataclass(frozen=True)
class SpectrumModelMetadata:
    """Metadata persisted next to the skops model arrays."""

    spectrum: SpectrumParams
    solver: SolverParams
    window_size: int | None
    n_support: int
    positive_label: WindowLabel = WindowLabel.NMI
    negative_label: WindowLabel = WindowLabel.BACKGROUND
    threshold: float = 0.0
    sklearn_version: str = ""
    schema_version: str = SCHEMA_VERSION

    def to_dict(self) -> dict[str, object]:
        """Serialize metadata to a JSON-compatible dict."""
        return {
            "schema_version": self.schema_version,
            "spectrum": self.spectrum.to_dict(),
            "solver": self.solver.to_dict(),
            "window_size": self.window_size,
            "n_support": self.n_support,
            "positive_label": self.positive_label.value,
            "negative_label": self.negative_label.value,
            "threshold": self.threshold,
            "sklearn_version": self.sklearn_version,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> SpectrumModelMetadata:
        """Parse metadata from a JSON dict payload."""
        schema_version = str(payload.get("schema_version", SCHEMA_VERSION))
        if schema_version != SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported model schema version '{schema_version}'; expected '{SCHEMA_VERSION}'."
            )
        window_size = payload.get("window_size")
        return cls(
            spectrum=SpectrumParams.from_dict(payload["spectrum"]),
            solver=SolverParams.from_dict(payload["solver"]),
            window_size=None if window_size is None else int(window_size),
            n_support=int(payload["n_support"]),
            positive_label=WindowLabel(str(payload.get("positive_label", WindowLabel.NMI.value))),
            negative_label=WindowLabel(
                str(payload.get("negative_label", WindowLabel.BACKGROUND.value))
            ),
            threshold=float(payload.get("threshold", 0.0)),
            sklearn_version=str(payload.get("sklearn_version", "")),
            schema_version=schema_version,
        )


@dataclass(frozen=True)
class Prediction:
    """Decision score of one genomic window."""

    window: GenomicInterval
    score: float
    threshold: float = 0.0

    @property
    def is_positive(self) -> bool:
        """True when the window is called foreground-like."""
        return self.score > self.threshold

    @property
    def label(self) -> WindowLabel:
        """Thresholded class of the window."""
        return WindowLabel.NMI if self.is_positive else WindowLabel.BACKGROUND


def _score_block(
    sequences: Sequence[str],
    support_vectors: SpectrumFeatures,
    dual_coef: np.ndarray,
    intercept: float,
) -> np.ndarray:
    """Worker body: decision scores for one block of query sequences."""
    queries = spectrum_features(sequences, support_vectors.params)
    kernel = kernel_matrix(queries, support_vectors, block_size=max(len(queries), 1))
    return kernel @ dual_coef + intercept


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


def _frozen_matrix(matrix: sp.csr_matrix) -> sp.csr_matrix:
    matrix = sp.csr_matrix(matrix, copy=True)
    for array in (matrix.data, matrix.indices, matrix.indptr):
        array.setflags(write=False)
    return matrix


class SpectrumSvmModel:
    """Support vectors, dual coefficients and bias of a fitted spectrum SVM.

    Instances are read-only after construction, so one model can be scored
    from any number of workers.
    """

    def __init__(
        self,
        *,
        support_vectors: SpectrumFeatures,
        dual_coef: np.ndarray,
        intercept: float,
        metadata: SpectrumModelMetadata,
    ) -> None:
        """Store fitted arrays and model metadata."""
        if len(support_vectors) != np.asarray(dual_coef).shape[0]:
            raise DimensionMismatchError(
                f"{len(support_vectors)} support vectors but "
                f"{np.asarray(dual_coef).shape[0]} dual coefficients"
            )
        self.support_vectors = SpectrumFeatures(
            matrix=_frozen_matrix(support_vectors.matrix),
            vocabulary=_frozen(support_vectors.vocabulary),
            params=support_vectors.params,
        )
        self.dual_coef = _frozen(np.asarray(dual_coef, dtype=np.float64))
        self.intercept = float(intercept)
        self.metadata = metadata

    @classmethod
    def train(
        cls,
        sequences: Sequence[str],
        labels: Sequence[WindowLabel],
        *,
        spectrum: SpectrumParams = SpectrumParams(),
        solver: SolverParams = SolverParams(),
        strategy: KernelStrategy = KernelStrategy.AUTO,
        max_precomputed: int = DEFAULT_MAX_PRECOMPUTED,
        window_size: int | None = None,
        n_jobs: int = 1,
        block_size: int = DEFAULT_BLOCK_SIZE,
        verbose: bool = False,
    ) -> SpectrumSvmModel:
        """Extract spectra, solve the dual and keep only the support vectors."""
        if len(sequences) != len(labels):
            raise InvalidInputError(
                f"{len(sequences)} training sequences but {len(labels)} labels"
            )
        from sklearn import __version__ as sklearn_version

        features = spectrum_features(sequences, spectrum, n_jobs=n_jobs)
        resolved = KernelStrategy(strategy).resolve(len(features), max_precomputed)
        if verbose:
            sys.stderr.write(
                f"Extracted {features.vocabulary.shape[0]} distinct {spectrum.k}-mers from "
                f"{len(features)} windows; using {resolved.value} kernel\n"
            )
        if resolved == KernelStrategy.PRECOMPUTED:
            gram = kernel_matrix(features, n_jobs=n_jobs, block_size=block_size)
            solution = fit_svm(gram, labels, solver=solver)
        else:
            solution = fit_svm_features(features, labels, solver=solver)
        if verbose:
            sys.stderr.write(f"Solver kept {solution.support.shape[0]} support vectors\n")

        metadata = SpectrumModelMetadata(
            spectrum=spectrum,
            solver=solver,
            window_size=window_size,
            n_support=int(solution.support.shape[0]),
            sklearn_version=sklearn_version,
        )
        return cls(
            support_vectors=features.take(solution.support),
            dual_coef=solution.dual_coef,
            intercept=solution.intercept,
            metadata=metadata,
        )

    @property
    def params(self) -> SpectrumParams:
        """Spectrum parameters the model was trained with."""
        return self.support_vectors.params

    def decision_scores(
        self,
        sequences: Sequence[str],
        *,
        n_jobs: int = 1,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> np.ndarray:
        """Return ``sum_i alpha_i y_i K(sv_i, query) + b`` for every query, in order."""
        sequences = list(sequences)
        if not sequences:
            return np.empty(0, dtype=np.float64)
        blocks = [sequences[start : start + block_size] for start in range(0, len(sequences), block_size)]
        if n_jobs == 1:
            scores = [
                _score_block(block, self.support_vectors, self.dual_coef, self.intercept)
                for block in blocks
            ]
        else:
            scores = Parallel(n_jobs=n_jobs)(
                delayed(_score_block)(block, self.support_vectors, self.dual_coef, self.intercept)
                for block in blocks
            )
        return np.concatenate(scores)

    def predict(
        self,
        windows: Sequence[GenomicInterval],
        sequences: Sequence[str],
        *,
        n_jobs: int = 1,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> list[Prediction]:
        """Score window sequences and pair each score with its window."""
        if len(windows) != len(sequences):
            raise InvalidInputError(f"{len(windows)} windows but {len(sequences)} sequences")
        scores = self.decision_scores(sequences, n_jobs=n_jobs, block_size=block_size)
        return [
            Prediction(window=window, score=float(score), threshold=self.metadata.threshold)
            for window, score in zip(windows, scores)
        ]

    def save(self, *, artifact_path: Path, metadata_path: Path) -> None:
        """Persist model arrays with skops plus sidecar JSON metadata."""
        import skops.io as skops_io

        artifact_path.parent.mkdir(parents=True, exist_ok=True)
        metadata_path.parent.mkdir(parents=True, exist_ok=True)
        state = {
            "support_matrix": sp.csr_matrix(self.support_vectors.matrix, copy=True),
            "vocabulary": np.array(self.support_vectors.vocabulary, copy=True),
            "dual_coef": np.array(self.dual_coef, copy=True),
            "intercept": self.intercept,
        }
        skops_io.dump(state, str(artifact_path))
        metadata_path.write_text(
            json.dumps(self.metadata.to_dict(), indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )

    @classmethod
    def load(cls, *, artifact_path: Path, metadata_path: Path) -> SpectrumSvmModel:
        """Load a persisted model and metadata pair from disk."""
        import skops.io as skops_io

        for path in (artifact_path, metadata_path):
            if not path.exists():
                raise FileNotFoundError(f"Model file not found: {path}")
        payload = json.loads(metadata_path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Expected JSON object in {metadata_path}")
        metadata = SpectrumModelMetadata.from_dict(payload)
        untrusted_types = skops_io.get_untrusted_types(file=str(artifact_path))
        state = skops_io.load(str(artifact_path), trusted=untrusted_types)
        support_vectors = SpectrumFeatures(
            matrix=sp.csr_matrix(state["support_matrix"]),
            vocabulary=np.asarray(state["vocabulary"], dtype=np.int64),
            params=metadata.spectrum,
        )
        return cls(
            support_vectors=support_vectors,
            dual_coef=np.asarray(state["dual_coef"], dtype=np.float64),
            intercept=float(state["intercept"]),
            metadata=metadata,
        )


def load_spectrum_model(spec_path: str | Path) -> SpectrumSvmModel:
    """Load one model bundle from either `.skops` or `.metadata.json` path."""
    artifact_path, metadata_path = resolve_bundle_paths(Path(spec_path))
    return SpectrumSvmModel.load(artifact_path=artifact_path, metadata_path=metadata_path)


def resolve_bundle_paths(spec_path: Path) -> tuple[Path, Path]:
    """Resolve artifact and metadata paths from one user-provided model path."""
    if spec_path.suffix == ".skops":
        return spec_path, spec_path.with_suffix(".metadata.json")
    if spec_path.name.endswith(".metadata.json"):
        artifact_name = spec_path.name[: -len(".metadata.json")] + ".skops"
        return spec_path.with_name(artifact_name), spec_path
    raise ValueError(
        f"Unsupported model specification path '{spec_path}'. "
        "Use either <name>.skops or <name>.metadata.json."
    )
