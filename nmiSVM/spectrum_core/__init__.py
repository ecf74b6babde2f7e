"""K-mer spectrum SVM APIs for genomic window classification."""

from nmiSVM.spectrum_core.intervals import (
    GenomicInterval,
    Window,
    iter_windows,
    load_bed_intervals,
    merge_intervals,
    trim_to_window,
    window_intervals,
)
from nmiSVM.spectrum_core.kernel import kernel_matrix, spectrum_kernel
from nmiSVM.spectrum_core.kmers import (
    Alphabet,
    SpectrumFeatures,
    SpectrumParams,
    decode_kmer,
    encode_kmer,
    extract_kmer_counts,
    spectrum_features,
)
from nmiSVM.spectrum_core.model import (
    Prediction,
    SpectrumModelMetadata,
    SpectrumSvmModel,
    load_spectrum_model,
)
from nmiSVM.spectrum_core.sequences import fetch_sequences, iter_window_batches, reference_intervals
from nmiSVM.spectrum_core.svm import (
    KernelStrategy,
    SolverParams,
    SvmSolution,
    WindowLabel,
    fit_svm,
    fit_svm_features,
)

__all__ = [
    "Alphabet",
    "GenomicInterval",
    "KernelStrategy",
    "Prediction",
    "SolverParams",
    "SpectrumFeatures",
    "SpectrumModelMetadata",
    "SpectrumParams",
    "SpectrumSvmModel",
    "SvmSolution",
    "Window",
    "WindowLabel",
    "decode_kmer",
    "encode_kmer",
    "extract_kmer_counts",
    "fetch_sequences",
    "fit_svm",
    "fit_svm_features",
    "iter_window_batches",
    "iter_windows",
    "kernel_matrix",
    "load_bed_intervals",
    "load_spectrum_model",
    "merge_intervals",
    "reference_intervals",
    "spectrum_features",
    "spectrum_kernel",
    "trim_to_window",
    "window_intervals",
]
