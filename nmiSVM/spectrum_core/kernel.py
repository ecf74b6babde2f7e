"""Spectrum kernel evaluation for single pairs and for blocked batches."""

from __future__ import annotations

import math

import numpy as np
import scipy.sparse as sp
from joblib import Parallel, delayed

from nmiSVM.errors import DimensionMismatchError
from nmiSVM.spectrum_core.kmers import SpectrumFeatures, SpectrumParams, extract_kmer_counts

DEFAULT_BLOCK_SIZE = 1024


def spectrum_kernel(a: str, b: str, params: SpectrumParams) -> float:
    """Dot product of the k-mer spectra of two sequences."""
    counts_a = extract_kmer_counts(a, params)
    counts_b = extract_kmer_counts(b, params)
    if len(counts_b) < len(counts_a):
        counts_a, counts_b = counts_b, counts_a
    value = sum(count * counts_b.get(kmer, 0.0) for kmer, count in counts_a.items())
    if not params.normalize:
        return float(value)

    norm_a = sum(count * count for count in counts_a.values())
    norm_b = sum(count * count for count in counts_b.values())
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(value / math.sqrt(norm_a * norm_b))


def _check_compatible(features_a: SpectrumFeatures, features_b: SpectrumFeatures) -> None:
    """Kernels are only defined between spectra of the same feature space."""
    if features_a.params != features_b.params:
        raise DimensionMismatchError(
            f"Spectrum parameters differ: {features_a.params} vs {features_b.params}"
        )


def _kernel_block(rows: sp.csr_matrix, columns: sp.csr_matrix) -> np.ndarray:
    """Dense kernel values between two sparse count matrices on one vocabulary."""
    return np.asarray((rows @ columns.T).toarray(), dtype=np.float64)


def _normalize_kernel(
    kernel: np.ndarray,
    norms_rows: np.ndarray,
    norms_columns: np.ndarray,
) -> np.ndarray:
    """Apply sqrt-diagonal normalization; zero-norm sequences score 0."""
    scale = np.sqrt(np.outer(norms_rows, norms_columns))
    with np.errstate(divide="ignore", invalid="ignore"):
        normalized = np.where(scale > 0, kernel / scale, 0.0)
    return normalized


def kernel_matrix(
    features_a: SpectrumFeatures,
    features_b: SpectrumFeatures | None = None,
    *,
    n_jobs: int = 1,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> np.ndarray:
    """Compute ``K[i, j] = k(a_i, b_j)`` block-wise over the rows of ``features_a``.

    With ``features_b`` omitted the symmetric Gram matrix of ``features_a``
    is returned. Blocks are independent and run on ``n_jobs`` workers; the
    matrix is only returned once every block is assembled.
    """
    if block_size < 1:
        raise ValueError(f"block_size must be positive, got {block_size}")
    if features_b is None:
        features_b = features_a
        columns = features_a.matrix
    else:
        _check_compatible(features_a, features_b)
        columns = features_b.project(features_a.vocabulary)

    rows = features_a.matrix
    starts = range(0, rows.shape[0], block_size)
    if n_jobs == 1:
        blocks = [_kernel_block(rows[start : start + block_size], columns) for start in starts]
    else:
        blocks = Parallel(n_jobs=n_jobs)(
            delayed(_kernel_block)(rows[start : start + block_size], columns) for start in starts
        )

    if blocks:
        kernel = np.vstack(blocks)
    else:
        kernel = np.zeros((rows.shape[0], columns.shape[0]), dtype=np.float64)
    if kernel.shape != (len(features_a), len(features_b)):
        raise DimensionMismatchError(
            f"Kernel shape {kernel.shape} does not match "
            f"({len(features_a)}, {len(features_b)}) inputs"
        )

    if features_a.params.normalize:
        kernel = _normalize_kernel(kernel, features_a.squared_norms(), features_b.squared_norms())
    return kernel


def normalized_rows(features: SpectrumFeatures) -> sp.csr_matrix:
    """Scale each spectrum to unit length so that a linear kernel is the cosine kernel."""
    norms = np.sqrt(features.squared_norms())
    inverse = np.divide(1.0, norms, out=np.zeros_like(norms), where=norms > 0)
    return sp.csr_matrix(sp.diags(inverse) @ features.matrix)
