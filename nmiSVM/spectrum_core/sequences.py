"""Random-access FASTA reads for genomic windows."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

import pysam
from pysam.utils import SamtoolsError

from nmiSVM.errors import InvalidInputError
from nmiSVM.spectrum_core.intervals import GenomicInterval

DEFAULT_BATCH_SIZE = 4096


def _open_reference(fasta_path: str | Path) -> pysam.FastaFile:
    """Open an indexed FASTA, building the ``.fai`` index when it is missing."""
    path = Path(fasta_path)
    if not path.exists():
        raise FileNotFoundError(f"FASTA file not found: {path}")
    if not Path(f"{path}.fai").exists():
        try:
            pysam.faidx(str(path))
        except SamtoolsError as exc:
            raise OSError(f"Could not index FASTA file {path}: {exc}") from exc
    return pysam.FastaFile(str(path))


def reference_intervals(fasta_path: str | Path) -> list[GenomicInterval]:
    """One interval per FASTA record covering the whole record."""
    with _open_reference(fasta_path) as reference:
        return [
            GenomicInterval(chrom=name, start=0, end=length)
            for name, length in zip(reference.references, reference.lengths)
        ]


def _fetch_run(
    reference: pysam.FastaFile,
    lengths: dict[str, int],
    run: Sequence[GenomicInterval],
) -> list[str]:
    """Read a run of intervals on one reference with a single fetch and slice it."""
    chrom = run[0].chrom
    if chrom not in lengths:
        raise InvalidInputError(f"Reference sequence '{chrom}' not found in FASTA")
    span_start = min(interval.start for interval in run)
    span_end = max(interval.end for interval in run)
    if span_end > lengths[chrom]:
        raise InvalidInputError(
            f"Interval {chrom}:[{span_start}, {span_end}) runs past the end of "
            f"'{chrom}' (length {lengths[chrom]})"
        )
    span = reference.fetch(chrom, span_start, span_end).upper()
    return [span[interval.start - span_start : interval.end - span_start] for interval in run]


def _runs(intervals: Sequence[GenomicInterval], batch_size: int) -> Iterator[Sequence[GenomicInterval]]:
    """Group consecutive, abutting intervals on one reference into runs of at most ``batch_size``.

    Windows tiled from one interval form a single run, so each source
    interval costs one FASTA read.
    """
    run: list[GenomicInterval] = []
    for interval in intervals:
        if run:
            previous = run[-1]
            contiguous = (
                interval.chrom == previous.chrom
                and previous.start <= interval.start <= previous.end
            )
            if not contiguous or len(run) == batch_size:
                yield run
                run = []
        run.append(interval)
    if run:
        yield run


def fetch_sequences(
    fasta_path: str | Path,
    intervals: Sequence[GenomicInterval],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[str]:
    """Return the uppercase sequence of every interval, in input order."""
    intervals = list(intervals)
    with _open_reference(fasta_path) as reference:
        lengths = dict(zip(reference.references, reference.lengths))
        sequences: list[str] = []
        for run in _runs(intervals, batch_size):
            sequences.extend(_fetch_run(reference, lengths, run))
    return sequences


def iter_window_batches(
    fasta_path: str | Path,
    windows: Iterable[GenomicInterval],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[tuple[list[GenomicInterval], list[str]]]:
    """Stream ``(windows, sequences)`` batches so memory stays bounded by ``batch_size``."""
    if batch_size < 1:
        raise InvalidInputError(f"batch_size must be positive, got {batch_size}")
    with _open_reference(fasta_path) as reference:
        lengths = dict(zip(reference.references, reference.lengths))
        batch: list[GenomicInterval] = []
        for window in windows:
            batch.append(window)
            if len(batch) == batch_size:
                yield batch, _fetch_batch(reference, lengths, batch)
                batch = []
        if batch:
            yield batch, _fetch_batch(reference, lengths, batch)


def _fetch_batch(
    reference: pysam.FastaFile,
    lengths: dict[str, int],
    batch: Sequence[GenomicInterval],
) -> list[str]:
    sequences: list[str] = []
    for run in _runs(batch, len(batch)):
        sequences.extend(_fetch_run(reference, lengths, run))
    return sequences
