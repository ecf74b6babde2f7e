"""K-mer spectrum feature extraction over a fixed alphabet.

K-mers are encoded as integer ranks in base ``len(alphabet)`` so that the
lexicographic order of the alphabet symbols is the numeric order of the
ranks. Batches are stored as sparse count matrices over a compact vocabulary
of the ranks actually observed, which keeps memory proportional to the
number of distinct k-mers rather than ``len(alphabet) ** k``.

K-mers that contain a symbol outside the alphabet are excluded: they are not
counted and there is no "unknown" bucket.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

import numpy as np
import scipy.sparse as sp
from joblib import Parallel, delayed

from nmiSVM.errors import InvalidInputError

MAX_RANK = np.iinfo(np.int64).max


class Alphabet(str, Enum):
    """Symbol sets accepted by the spectrum feature extractor."""

    DNA = "DNA"
    SNP = "SNP"
    RNA = "RNA"
    PROTEIN = "PROTEIN"

    @property
    def symbols(self) -> str:
        """Ordered symbols of the alphabet."""
        return ALPHABET_SYMBOLS[self]


ALPHABET_SYMBOLS = {
    Alphabet.DNA: "ACGT",
    Alphabet.SNP: "ACGTN",
    Alphabet.RNA: "ACGU",
    Alphabet.PROTEIN: "ACDEFGHIKLMNPQRSTVWY",
}


@dataclass(frozen=True)
class SpectrumParams:
    """Validated spectrum kernel configuration."""

    k: int = 2
    alphabet: Alphabet = Alphabet.SNP
    use_sign: bool = False
    normalize: bool = False

    def __post_init__(self) -> None:
        """Coerce the alphabet and reject k-mer lengths that cannot be ranked."""
        try:
            object.__setattr__(self, "alphabet", Alphabet(self.alphabet))
        except ValueError as exc:
            raise InvalidInputError(f"Unknown alphabet {self.alphabet!r}") from exc
        if isinstance(self.k, bool) or not isinstance(self.k, int) or self.k < 1:
            raise InvalidInputError(f"k must be a positive integer, got {self.k!r}")
        if len(self.alphabet.symbols) ** self.k > MAX_RANK:
            raise InvalidInputError(
                f"k={self.k} is too large for the {self.alphabet.value} alphabet"
            )

    @property
    def base(self) -> int:
        """Radix used to rank k-mers."""
        return len(self.alphabet.symbols)

    @property
    def dimension(self) -> int:
        """Dimension of the dense feature space, ``len(alphabet) ** k``."""
        return self.base**self.k

    def to_dict(self) -> dict[str, str | int | bool]:
        """Serialize parameters to a JSON-compatible dict."""
        return {
            "k": self.k,
            "alphabet": self.alphabet.value,
            "use_sign": self.use_sign,
            "normalize": self.normalize,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> SpectrumParams:
        """Parse parameters from a JSON dict payload."""
        return cls(
            k=int(payload["k"]),
            alphabet=Alphabet(str(payload["alphabet"])),
            use_sign=bool(payload["use_sign"]),
            normalize=bool(payload.get("normalize", False)),
        )


@dataclass(frozen=True, eq=False)
class SpectrumFeatures:
    """Sparse k-mer spectra of a batch of sequences.

    ``matrix`` has one row per sequence and one column per entry of
    ``vocabulary``, the sorted k-mer ranks observed anywhere in the batch.
    """

    matrix: sp.csr_matrix
    vocabulary: np.ndarray
    params: SpectrumParams

    def __len__(self) -> int:
        return int(self.matrix.shape[0])

    def take(self, rows: Sequence[int] | np.ndarray) -> SpectrumFeatures:
        """Return the selected rows with the vocabulary compacted to their k-mers."""
        subset = sp.csr_matrix(self.matrix[np.asarray(rows, dtype=np.int64)])
        used = np.unique(subset.indices)
        remapped = sp.csr_matrix(
            (subset.data, np.searchsorted(used, subset.indices), subset.indptr),
            shape=(subset.shape[0], used.shape[0]),
        )
        return SpectrumFeatures(matrix=remapped, vocabulary=self.vocabulary[used], params=self.params)

    def project(self, vocabulary: np.ndarray) -> sp.csr_matrix:
        """Re-express the counts over another vocabulary, dropping absent k-mers.

        Dropped k-mers cannot contribute to a dot product with rows indexed
        by ``vocabulary``, so kernels computed on the projection are exact.
        """
        if vocabulary.shape[0] == 0:
            return sp.csr_matrix((len(self), 0), dtype=np.float64)
        ranks = self.vocabulary[self.matrix.indices]
        positions = np.searchsorted(vocabulary, ranks)
        found = vocabulary[np.minimum(positions, vocabulary.shape[0] - 1)] == ranks
        row_ids = np.repeat(np.arange(len(self)), np.diff(self.matrix.indptr))
        kept_per_row = np.bincount(row_ids[found], minlength=len(self))
        indptr = np.concatenate(([0], np.cumsum(kept_per_row)))
        return sp.csr_matrix(
            (self.matrix.data[found], positions[found], indptr),
            shape=(len(self), vocabulary.shape[0]),
        )

    def squared_norms(self) -> np.ndarray:
        """Self-kernel value of every row."""
        return np.asarray(self.matrix.multiply(self.matrix).sum(axis=1), dtype=np.float64).ravel()


@lru_cache(maxsize=None)
def _symbol_table(alphabet: Alphabet) -> np.ndarray:
    """Byte -> symbol-code lookup table, ``-1`` for bytes outside the alphabet."""
    table = np.full(256, -1, dtype=np.int64)
    for code, symbol in enumerate(alphabet.symbols):
        table[ord(symbol)] = code
    return table


def encode_kmer(kmer: str, params: SpectrumParams) -> int:
    """Rank one k-mer string."""
    if len(kmer) != params.k:
        raise InvalidInputError(f"Expected a {params.k}-mer, got {kmer!r}")
    rank = 0
    for symbol in kmer.upper():
        code = params.alphabet.symbols.find(symbol)
        if code < 0:
            raise InvalidInputError(f"Symbol {symbol!r} is not in the {params.alphabet.value} alphabet")
        rank = rank * params.base + code
    return rank


def decode_kmer(rank: int, params: SpectrumParams) -> str:
    """Turn a k-mer rank back into its string."""
    symbols = []
    for _ in range(params.k):
        rank, code = divmod(int(rank), params.base)
        symbols.append(params.alphabet.symbols[code])
    return "".join(reversed(symbols))


def kmer_ranks(sequence: str, params: SpectrumParams) -> tuple[np.ndarray, np.ndarray]:
    """Return sorted distinct k-mer ranks of ``sequence`` and their counts."""
    if len(sequence) < params.k:
        raise InvalidInputError(
            f"Sequence of length {len(sequence)} is shorter than k={params.k}"
        )
    raw = np.frombuffer(sequence.upper().encode("ascii", errors="replace"), dtype=np.uint8)
    codes = _symbol_table(params.alphabet)[raw]
    windows = np.lib.stride_tricks.sliding_window_view(codes, params.k)
    valid = (windows >= 0).all(axis=1)
    powers = params.base ** np.arange(params.k - 1, -1, -1, dtype=np.int64)
    ranks = windows[valid] @ powers
    unique_ranks, counts = np.unique(ranks, return_counts=True)
    values = np.ones_like(counts, dtype=np.float64) if params.use_sign else counts.astype(np.float64)
    return unique_ranks.astype(np.int64), values


def extract_kmer_counts(sequence: str, params: SpectrumParams) -> dict[str, float]:
    """Map every in-alphabet k-mer of ``sequence`` to its count (or 1 with ``use_sign``)."""
    ranks, values = kmer_ranks(sequence, params)
    return {decode_kmer(rank, params): float(value) for rank, value in zip(ranks, values)}


def _rank_rows(sequences: Sequence[str], params: SpectrumParams) -> list[tuple[np.ndarray, np.ndarray]]:
    """Worker body: rank every sequence of one chunk."""
    return [kmer_ranks(sequence, params) for sequence in sequences]


def _chunks(items: Sequence[str], n_chunks: int) -> list[Sequence[str]]:
    size = max(1, -(-len(items) // n_chunks))
    return [items[offset : offset + size] for offset in range(0, len(items), size)]


def spectrum_features(
    sequences: Sequence[str],
    params: SpectrumParams,
    *,
    n_jobs: int = 1,
) -> SpectrumFeatures:
    """Extract sparse spectra for a batch of sequences."""
    sequences = list(sequences)
    if n_jobs == 1 or len(sequences) < 2:
        rows = _rank_rows(sequences, params)
    else:
        parts = Parallel(n_jobs=n_jobs)(
            delayed(_rank_rows)(chunk, params) for chunk in _chunks(sequences, abs(n_jobs) * 4)
        )
        rows = [row for part in parts for row in part]
    return _assemble(rows, params)


def _assemble(rows: list[tuple[np.ndarray, np.ndarray]], params: SpectrumParams) -> SpectrumFeatures:
    """Build a compact-vocabulary CSR matrix from per-sequence rank rows."""
    if rows:
        all_ranks = np.concatenate([ranks for ranks, _ in rows])
        data = np.concatenate([values for _, values in rows])
    else:
        all_ranks = np.empty(0, dtype=np.int64)
        data = np.empty(0, dtype=np.float64)
    vocabulary = np.unique(all_ranks)
    indptr = np.concatenate(([0], np.cumsum([ranks.shape[0] for ranks, _ in rows], dtype=np.int64)))
    matrix = sp.csr_matrix(
        (data, np.searchsorted(vocabulary, all_ranks), indptr),
        shape=(len(rows), vocabulary.shape[0]),
    )
    return SpectrumFeatures(matrix=matrix, vocabulary=vocabulary, params=params)
