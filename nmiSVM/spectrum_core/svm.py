"""Soft-margin SVM training on spectrum kernels."""

from __future__ import annotations

import warnings
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np
import scipy.sparse as sp

from nmiSVM.errors import ConvergenceError, DimensionMismatchError, InvalidInputError
from nmiSVM.spectrum_core.kernel import normalized_rows
from nmiSVM.spectrum_core.kmers import SpectrumFeatures

DEFAULT_MAX_PRECOMPUTED = 10000


class WindowLabel(str, Enum):
    """Training classes for genomic windows."""

    NMI = "NMI"
    BACKGROUND = "Background"


class KernelStrategy(str, Enum):
    """How the solver sees the kernel."""

    AUTO = "auto"
    PRECOMPUTED = "precomputed"
    IMPLICIT = "implicit"

    def resolve(self, n_windows: int, max_precomputed: int = DEFAULT_MAX_PRECOMPUTED) -> KernelStrategy:
        """Pick a concrete strategy for a training set of ``n_windows`` windows."""
        if self != KernelStrategy.AUTO:
            return self
        if n_windows <= max_precomputed:
            return KernelStrategy.PRECOMPUTED
        return KernelStrategy.IMPLICIT


@dataclass(frozen=True)
class SolverParams:
    """Validated soft-margin solver settings."""

    c_value: float = 1.0
    eps: float = 1e-2
    max_iter: int = 1_000_000

    def __post_init__(self) -> None:
        """Reject non-positive penalties, tolerances and budgets."""
        if not self.c_value > 0:
            raise InvalidInputError(f"C must be positive, got {self.c_value}")
        if not self.eps > 0:
            raise InvalidInputError(f"eps must be positive, got {self.eps}")
        if self.max_iter < 1:
            raise InvalidInputError(f"max_iter must be >= 1, got {self.max_iter}")

    def to_dict(self) -> dict[str, float | int]:
        """Serialize solver settings to a JSON-compatible dict."""
        return {"c_value": self.c_value, "eps": self.eps, "max_iter": self.max_iter}

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> SolverParams:
        """Parse solver settings from a JSON dict payload."""
        return cls(
            c_value=float(payload["c_value"]),
            eps=float(payload["eps"]),
            max_iter=int(payload["max_iter"]),
        )


@dataclass(frozen=True, eq=False)
class SvmSolution:
    """Dual solution restricted to the support vectors.

    ``dual_coef[i]`` is ``alpha_i * y_i`` for training window ``support[i]``,
    with ``y = +1`` for the positive label.
    """

    support: np.ndarray
    dual_coef: np.ndarray
    intercept: float


def encode_labels(labels: Sequence[object], positive_label: object = WindowLabel.NMI) -> np.ndarray:
    """Map exactly two categorical labels to ``+1`` (positive) and ``-1``."""
    distinct = set(labels)
    if len(distinct) != 2:
        raise InvalidInputError(
            f"Training labels must take exactly two values, got {sorted(map(str, distinct))}"
        )
    if positive_label not in distinct:
        raise InvalidInputError(f"Positive label {positive_label!r} does not occur in the labels")
    return np.asarray([1 if label == positive_label else -1 for label in labels], dtype=np.int64)


def _solve(svc, inputs, targets: np.ndarray) -> SvmSolution:
    """Run libsvm and turn an early stop into a ConvergenceError."""
    from sklearn.exceptions import ConvergenceWarning

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        svc.fit(inputs, targets)
    if svc.fit_status_ != 0:
        raise ConvergenceError(
            f"SVM solver did not reach tolerance eps={svc.tol} within max_iter={svc.max_iter} iterations"
        )
    dual_coef = svc.dual_coef_
    if sp.issparse(dual_coef):
        dual_coef = dual_coef.toarray()
    # Binary SVC orients dual_coef_ and intercept_ towards classes_[1], here +1.
    return SvmSolution(
        support=np.asarray(svc.support_, dtype=np.int64),
        dual_coef=np.asarray(dual_coef, dtype=np.float64).ravel(),
        intercept=float(np.asarray(svc.intercept_).ravel()[0]),
    )


def fit_svm(
    kernel_matrix: np.ndarray,
    labels: Sequence[object],
    *,
    solver: SolverParams = SolverParams(),
    positive_label: object = WindowLabel.NMI,
) -> SvmSolution:
    """Solve the soft-margin dual on a precomputed Gram matrix."""
    from sklearn.svm import SVC

    kernel = np.asarray(kernel_matrix, dtype=np.float64)
    if kernel.ndim != 2 or kernel.shape[0] != kernel.shape[1]:
        raise DimensionMismatchError(f"Training kernel must be square, got shape {kernel.shape}")
    if kernel.shape[0] != len(labels):
        raise DimensionMismatchError(
            f"Kernel has {kernel.shape[0]} rows but {len(labels)} labels were given"
        )
    targets = encode_labels(labels, positive_label)
    svc = SVC(kernel="precomputed", C=solver.c_value, tol=solver.eps, max_iter=solver.max_iter)
    return _solve(svc, np.ascontiguousarray(kernel), targets)


def fit_svm_features(
    features: SpectrumFeatures,
    labels: Sequence[object],
    *,
    solver: SolverParams = SolverParams(),
    positive_label: object = WindowLabel.NMI,
    cache_size_mb: float = 1024.0,
) -> SvmSolution:
    """Solve the same dual without a Gram matrix.

    The spectrum kernel is linear in the k-mer counts, so libsvm's linear
    kernel over the sparse spectra evaluates it row by row inside a bounded
    kernel cache.
    """
    from sklearn.svm import SVC

    if len(features) != len(labels):
        raise DimensionMismatchError(
            f"{len(features)} feature rows but {len(labels)} labels were given"
        )
    targets = encode_labels(labels, positive_label)
    inputs = normalized_rows(features) if features.params.normalize else features.matrix
    svc = SVC(
        kernel="linear",
        C=solver.c_value,
        tol=solver.eps,
        max_iter=solver.max_iter,
        cache_size=cache_size_mb,
    )
    return _solve(svc, inputs, targets)
