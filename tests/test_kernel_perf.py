import statistics
import time
from collections.abc import Callable

import numpy
import pytest

from nmiSVM.spectrum_core.kernel import kernel_matrix, spectrum_kernel
from nmiSVM.spectrum_core.kmers import SpectrumParams, spectrum_features


def _median_runtime_seconds(
    func: Callable[[], object],
    *,
    warmup: int = 1,
    repeats: int = 3,
) -> float:
    for _ in range(warmup):
        func()

    samples = []
    for _ in range(repeats):
        start = time.perf_counter()
        func()
        samples.append(time.perf_counter() - start)
    return statistics.median(samples)


@pytest.mark.performance
def test_blocked_gram_matrix_beats_pairwise_kernel() -> None:
    rng = numpy.random.default_rng(0)
    sequences = ["".join(rng.choice(list("ACGTN"), size=300)) for _ in range(60)]
    params = SpectrumParams(k=3)

    def pairwise_runner() -> numpy.ndarray:
        return numpy.asarray(
            [[spectrum_kernel(a, b, params) for b in sequences] for a in sequences]
        )

    def blocked_runner() -> numpy.ndarray:
        return kernel_matrix(spectrum_features(sequences, params), block_size=16)

    numpy.testing.assert_allclose(blocked_runner(), pairwise_runner())

    pairwise_median = _median_runtime_seconds(pairwise_runner)
    blocked_median = _median_runtime_seconds(blocked_runner)

    assert blocked_median <= pairwise_median * 0.5, (
        f"Expected >=2x speedup over pairwise evaluation; "
        f"blocked={blocked_median:.6f}s pairwise={pairwise_median:.6f}s"
    )
