"""Genomic intervals, fixed-width windowing and BED interval I/O.

All coordinates are 0-based and half-open, the BED convention, so a BED row
``chr1 100 250`` is the interval ``[100, 250)`` with width 150.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from pybedtools import BedTool
from pybedtools.cbedtools import MalformedBedLineError

from nmiSVM.errors import InvalidInputError


@dataclass(frozen=True)
class GenomicInterval:
    """One 0-based, half-open interval on a named reference sequence."""

    chrom: str
    start: int
    end: int
    strand: str = "."

    def __post_init__(self) -> None:
        """Reject negative or inverted coordinates."""
        if self.start < 0 or self.end < self.start:
            raise InvalidInputError(
                f"Invalid interval {self.chrom}:[{self.start}, {self.end}); "
                "expected 0 <= start <= end"
            )

    @property
    def width(self) -> int:
        """Number of bases covered by the interval."""
        return self.end - self.start


@dataclass(frozen=True)
class Window(GenomicInterval):
    """A fixed-width interval produced by :func:`iter_windows`."""


def _check_window_size(window_size: int) -> None:
    """Validate a window size once for all windowing helpers."""
    if isinstance(window_size, bool) or not isinstance(window_size, int):
        raise InvalidInputError(f"window_size must be an integer, got {window_size!r}")
    if window_size <= 0:
        raise InvalidInputError(f"window_size must be positive, got {window_size}")


def trim_to_window(interval: GenomicInterval, window_size: int) -> GenomicInterval | None:
    """Drop the trailing bases that do not fill a whole window.

    Returns ``None`` when the interval is narrower than one window.
    """
    _check_window_size(window_size)
    usable = interval.width - (interval.width % window_size)
    if usable == 0:
        return None
    return GenomicInterval(
        chrom=interval.chrom,
        start=interval.start,
        end=interval.start + usable,
        strand=interval.strand,
    )


def iter_windows(intervals: Iterable[GenomicInterval], window_size: int) -> Iterator[Window]:
    """Yield adjacent fixed-width windows tiling each interval left to right."""
    _check_window_size(window_size)
    for interval in intervals:
        trimmed = trim_to_window(interval, window_size)
        if trimmed is None:
            continue
        for start in range(trimmed.start, trimmed.end, window_size):
            yield Window(
                chrom=trimmed.chrom,
                start=start,
                end=start + window_size,
                strand=trimmed.strand,
            )


def window_intervals(intervals: Iterable[GenomicInterval], window_size: int) -> list[Window]:
    """Split intervals into windows of exactly ``window_size`` bases."""
    return list(iter_windows(intervals, window_size))


def merge_intervals(intervals: Iterable[GenomicInterval]) -> list[GenomicInterval]:
    """Merge overlapping or adjacent intervals on the same chromosome and strand."""
    ordered = sorted(intervals, key=lambda item: (item.chrom, item.strand, item.start, item.end))
    merged: list[GenomicInterval] = []
    for interval in ordered:
        if merged:
            last = merged[-1]
            same_sequence = last.chrom == interval.chrom and last.strand == interval.strand
            if same_sequence and interval.start <= last.end:
                merged[-1] = GenomicInterval(
                    chrom=last.chrom,
                    start=last.start,
                    end=max(last.end, interval.end),
                    strand=last.strand,
                )
                continue
        merged.append(
            GenomicInterval(
                chrom=interval.chrom,
                start=interval.start,
                end=interval.end,
                strand=interval.strand,
            )
        )
    return sorted(merged, key=lambda item: (item.chrom, item.start, item.end))


def load_bed_intervals(path: str | Path) -> list[GenomicInterval]:
    """Load BED3+ intervals, keeping the strand column when it is present."""
    bed_path = Path(path)
    if not bed_path.exists():
        raise FileNotFoundError(f"BED file not found: {bed_path}")

    intervals: list[GenomicInterval] = []
    try:
        for feature in BedTool(str(bed_path)):
            strand = feature.strand if feature.strand in {"+", "-"} else "."
            intervals.append(
                GenomicInterval(
                    chrom=feature.chrom,
                    start=int(feature.start),
                    end=int(feature.end),
                    strand=strand,
                )
            )
    except (MalformedBedLineError, InvalidInputError, IndexError, ValueError) as exc:
        raise InvalidInputError(
            f"{bed_path}: malformed BED row after {len(intervals)} valid rows: {exc}"
        ) from exc
    return intervals
