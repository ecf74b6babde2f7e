from __future__ import annotations

import numpy as np
import pytest

from nmiSVM.errors import InvalidInputError
from nmiSVM.spectrum_core.kmers import (
    Alphabet,
    SpectrumParams,
    decode_kmer,
    encode_kmer,
    extract_kmer_counts,
    kmer_ranks,
    spectrum_features,
)


@pytest.mark.unit
def test_counts_cover_every_position_for_in_alphabet_sequence() -> None:
    params = SpectrumParams(k=3, alphabet=Alphabet.DNA)
    sequence = "ACGTACGTTTGCA"

    counts = extract_kmer_counts(sequence, params)

    assert sum(counts.values()) == len(sequence) - params.k + 1
    assert counts["ACG"] == 2
    assert counts["CGT"] == 2
    assert counts["TTG"] == 1


@pytest.mark.unit
def test_lowercase_input_is_counted_as_uppercase() -> None:
    params = SpectrumParams(k=2, alphabet=Alphabet.DNA)

    assert extract_kmer_counts("acgT", params) == extract_kmer_counts("ACGT", params)


@pytest.mark.unit
def test_kmers_with_out_of_alphabet_symbols_are_excluded() -> None:
    params = SpectrumParams(k=2, alphabet=Alphabet.DNA)

    counts = extract_kmer_counts("ACNGT", params)

    assert counts == {"AC": 1.0, "GT": 1.0}


@pytest.mark.unit
def test_snp_alphabet_counts_ambiguous_bases() -> None:
    params = SpectrumParams(k=2, alphabet=Alphabet.SNP)

    counts = extract_kmer_counts("ACNGT", params)

    assert counts == {"AC": 1.0, "CN": 1.0, "NG": 1.0, "GT": 1.0}


@pytest.mark.unit
def test_use_sign_records_presence_only() -> None:
    params = SpectrumParams(k=1, alphabet=Alphabet.DNA, use_sign=True)

    counts = extract_kmer_counts("AAAAC", params)

    assert counts == {"A": 1.0, "C": 1.0}


@pytest.mark.unit
def test_sequence_shorter_than_k_is_rejected() -> None:
    with pytest.raises(InvalidInputError, match="shorter than k=4"):
        extract_kmer_counts("ACG", SpectrumParams(k=4))


@pytest.mark.unit
@pytest.mark.parametrize("k", [0, -1, 1.5, True])
def test_invalid_k_is_rejected(k: object) -> None:
    with pytest.raises(InvalidInputError):
        SpectrumParams(k=k)  # type: ignore[arg-type]


@pytest.mark.unit
def test_unknown_alphabet_is_rejected() -> None:
    with pytest.raises(InvalidInputError, match="Unknown alphabet"):
        SpectrumParams(alphabet="IUPAC")  # type: ignore[arg-type]


@pytest.mark.unit
def test_alphabet_is_coerced_from_its_name() -> None:
    params = SpectrumParams(alphabet="DNA")  # type: ignore[arg-type]

    assert params.alphabet is Alphabet.DNA
    assert params.dimension == 16


@pytest.mark.unit
def test_kmer_ranks_follow_alphabet_order() -> None:
    params = SpectrumParams(k=2, alphabet=Alphabet.DNA)

    assert encode_kmer("AA", params) == 0
    assert encode_kmer("AC", params) == 1
    assert encode_kmer("CA", params) == 4
    assert encode_kmer("TT", params) == 15
    assert decode_kmer(encode_kmer("GT", params), params) == "GT"


@pytest.mark.unit
def test_encode_kmer_rejects_foreign_symbols() -> None:
    with pytest.raises(InvalidInputError):
        encode_kmer("AN", SpectrumParams(k=2, alphabet=Alphabet.DNA))


@pytest.mark.unit
def test_kmer_ranks_are_sorted_and_distinct() -> None:
    params = SpectrumParams(k=2, alphabet=Alphabet.SNP)

    ranks, values = kmer_ranks("TTGCAATTNN", params)

    assert np.all(np.diff(ranks) > 0)
    assert values.sum() == 9


@pytest.mark.unit
def test_spectrum_features_match_per_sequence_counts() -> None:
    params = SpectrumParams(k=2, alphabet=Alphabet.SNP)
    sequences = ["ACGTACGT", "GGGGCCCC", "ANNA", "TTTTTTTT"]

    features = spectrum_features(sequences, params)

    assert features.matrix.shape == (4, features.vocabulary.shape[0])
    assert np.all(np.diff(features.vocabulary) > 0)
    for row, sequence in enumerate(sequences):
        dense = features.matrix.getrow(row).toarray().ravel()
        observed = {
            decode_kmer(rank, params): value
            for rank, value in zip(features.vocabulary, dense)
            if value
        }
        assert observed == extract_kmer_counts(sequence, params)


@pytest.mark.unit
def test_spectrum_features_parallel_matches_serial() -> None:
    rng = np.random.default_rng(3)
    sequences = ["".join(rng.choice(list("ACGTN"), size=40)) for _ in range(25)]
    params = SpectrumParams(k=3)

    serial = spectrum_features(sequences, params)
    parallel = spectrum_features(sequences, params, n_jobs=2)

    assert np.array_equal(serial.vocabulary, parallel.vocabulary)
    assert (serial.matrix != parallel.matrix).nnz == 0


@pytest.mark.unit
def test_take_compacts_vocabulary_to_selected_rows() -> None:
    params = SpectrumParams(k=1, alphabet=Alphabet.DNA)
    features = spectrum_features(["AAAA", "CCCC", "GGTT"], params)

    subset = features.take([0, 2])

    assert len(subset) == 2
    assert [decode_kmer(rank, params) for rank in subset.vocabulary] == ["A", "G", "T"]
    assert subset.matrix.toarray().tolist() == [[4.0, 0.0, 0.0], [0.0, 2.0, 2.0]]


@pytest.mark.unit
def test_project_drops_kmers_absent_from_target_vocabulary() -> None:
    params = SpectrumParams(k=1, alphabet=Alphabet.DNA)
    features = spectrum_features(["ACCT", "GGGA"], params)
    target = np.asarray([encode_kmer("C", params), encode_kmer("G", params)], dtype=np.int64)

    projected = features.project(target)

    assert projected.toarray().tolist() == [[2.0, 0.0], [0.0, 3.0]]
    assert features.project(np.empty(0, dtype=np.int64)).shape == (2, 0)


@pytest.mark.unit
def test_params_round_trip_through_dict() -> None:
    params = SpectrumParams(k=5, alphabet=Alphabet.RNA, use_sign=True, normalize=True)

    assert SpectrumParams.from_dict(params.to_dict()) == params
