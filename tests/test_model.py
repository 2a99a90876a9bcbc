"""Tests for the per-position consensus likelihood model."""

import pytest

from poaconsensus.config import MAX_PHRED, MIN_PHRED, NO_CALL
from poaconsensus.model import (
    ConsensusModel,
    phred_to_probability,
    probability_of_error_two_trials,
    probability_to_phred,
)


def test_phred_conversions():
    assert float(phred_to_probability(10)) == pytest.approx(0.1)
    assert float(phred_to_probability(30)) == pytest.approx(0.001)
    assert probability_to_phred(0.001) == 30
    assert probability_to_phred(0.0) == MAX_PHRED
    assert probability_to_phred(1e-20) == MAX_PHRED
    assert probability_to_phred(0.9) == MIN_PHRED


def test_two_trial_error_probability():
    assert probability_of_error_two_trials(0.0, 0.01) == pytest.approx(0.01)
    assert probability_of_error_two_trials(0.01, 0.0) == pytest.approx(0.01)
    # Both trials erring only counts two times in three
    assert probability_of_error_two_trials(1.0, 1.0) == pytest.approx(2.0 / 3.0)


def test_no_observations_is_no_call():
    model = ConsensusModel()
    assert model.call() == (NO_CALL, MIN_PHRED)
    assert model.contributions == 0


def test_single_observation():
    """One Q30 base is degraded slightly by the post- and pre-labeling error rates."""
    model = ConsensusModel(error_rate_pre_labeling=45, error_rate_post_labeling=40)
    model.add("A", 30)

    base, qual = model.call()

    assert base == "A"
    assert qual == 29
    assert model.contributions == 1
    assert model.observations("A") == 1
    assert model.observations("C") == 0


def test_agreeing_observations_are_capped_by_pre_labeling_rate():
    model = ConsensusModel(error_rate_pre_labeling=45, error_rate_post_labeling=40)
    for _ in range(3):
        model.add("G", 30)

    base, qual = model.call()

    assert base == "G"
    assert qual == 45


def test_equal_evidence_is_no_call():
    model = ConsensusModel()
    model.add("A", 30)
    model.add("C", 30)

    assert model.call() == (NO_CALL, MIN_PHRED)
    assert model.contributions == 2


def test_higher_quality_base_wins():
    model = ConsensusModel()
    model.add("A", 30)
    model.add("C", 20)

    base, qual = model.call()

    assert base == "A"
    assert MIN_PHRED <= qual < 30
    assert model.observations("A") == 1
    assert model.observations("C") == 1


def test_majority_beats_single_dissent():
    model = ConsensusModel()
    for _ in range(4):
        model.add("T", 25)
    model.add("A", 35)

    base, _ = model.call()
    assert base == "T"
    assert model.contributions == 5
    assert model.observations("T") == 4


def test_no_call_bases_are_ignored():
    model = ConsensusModel()
    model.add("N", 30)
    model.add("n", 30)

    assert model.contributions == 0
    assert model.observations("N") == 0
    assert model.call() == (NO_CALL, MIN_PHRED)


def test_lowercase_bases_are_counted():
    model = ConsensusModel()
    model.add("a", 30)

    assert model.observations("A") == 1
    assert model.call()[0] == "A"


def test_out_of_range_qualities_are_clamped():
    model = ConsensusModel(max_raw_base_quality=40)
    model.add("C", 200)
    model.add("C", -5)

    base, qual = model.call()
    assert base == "C"
    assert MIN_PHRED <= qual <= MAX_PHRED


def test_call_does_not_clear_and_reset_does():
    model = ConsensusModel()
    model.add("A", 30)
    first = model.call()

    assert model.call() == first
    assert model.contributions == 1

    model.reset()
    assert model.contributions == 0
    assert model.call() == (NO_CALL, MIN_PHRED)

    model.add("T", 30)
    assert model.call()[0] == "T"


def test_low_quality_single_observation():
    model = ConsensusModel()
    model.add("A", 5)

    base, qual = model.call()
    assert base == "A"
    assert qual < 10
