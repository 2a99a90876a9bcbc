"""
Per-position likelihood model for calling a consensus base from read observations.

Each observed base quality is first combined with the post-labeling error rate
(errors introduced after the UMI was attached, e.g. during PCR), and the
observations are accumulated as log-likelihoods for A, C, G and T. The error
probability of the winning base is finally combined with the pre-labeling error
rate (damage to the template before the UMI was attached) and reported as a
Phred score.
"""

import math
from typing import Tuple

import numpy as np

from poaconsensus.config import MAX_PHRED, MIN_PHRED, NO_CALL

BASES = "ACGT"
BASE_INDEX = {base: i for i, base in enumerate(BASES)}

# Log-likelihoods closer than this are treated as tied
TIE_TOLERANCE = 1e-9


def phred_to_probability(phred):
    """Convert a Phred score (scalar or array) to an error probability."""
    return 10.0 ** (-np.asarray(phred, dtype=float) / 10.0)


def probability_to_phred(probability: float) -> int:
    """Convert an error probability to a Phred score clamped to [MIN_PHRED, MAX_PHRED]."""
    if probability <= 0.0:
        return MAX_PHRED
    phred = int(round(-10.0 * math.log10(probability)))
    return max(MIN_PHRED, min(MAX_PHRED, phred))


def probability_of_error_two_trials(p1, p2):
    """Probability of ending with a wrong base after two independent error chances.

    When both trials err, the second error restores the original base one time
    in three.
    """
    return p1 * (1.0 - p2) + (1.0 - p1) * p2 + p1 * p2 * 2.0 / 3.0


class ConsensusModel:
    """Reusable accumulator of (base, quality) observations for one position.

    Use it once per column: ``add`` every observation, ``call`` it, then
    ``reset`` before the next column. Not safe for concurrent use.
    """

    def __init__(self, error_rate_pre_labeling: int = 45,
                 error_rate_post_labeling: int = 40,
                 max_raw_base_quality: int = MAX_PHRED):
        self.error_rate_pre_labeling = error_rate_pre_labeling
        self.error_rate_post_labeling = error_rate_post_labeling
        self.max_raw_base_quality = max_raw_base_quality

        self._pre_labeling_error = float(phred_to_probability(error_rate_pre_labeling))
        post_labeling_error = float(phred_to_probability(error_rate_post_labeling))

        # Lookup tables indexed by raw base quality
        raw_errors = phred_to_probability(np.arange(max_raw_base_quality + 1))
        adjusted = probability_of_error_two_trials(post_labeling_error, raw_errors)
        self._ln_correct = np.log1p(-adjusted)
        self._ln_error = np.log(adjusted / 3.0)

        self._likelihoods = np.zeros(len(BASES), dtype=float)
        self._counts = np.zeros(len(BASES), dtype=np.int64)

    def add(self, base: str, quality: int) -> None:
        """Record one observation. Bases other than A, C, G, T are ignored."""
        index = BASE_INDEX.get(base.upper())
        if index is None:
            return
        q = min(max(int(quality), 0), self.max_raw_base_quality)
        self._likelihoods += self._ln_error[q]
        self._likelihoods[index] += self._ln_correct[q] - self._ln_error[q]
        self._counts[index] += 1

    def call(self) -> Tuple[str, int]:
        """Return the most likely base and its Phred-scaled quality.

        With no observations, or when two bases are equally likely, returns a
        no-call at the minimum quality. Accumulated state is left untouched.
        """
        if self.contributions == 0:
            return NO_CALL, MIN_PHRED

        best = self._likelihoods.max()
        winners = np.flatnonzero(self._likelihoods >= best - TIE_TOLERANCE)
        if len(winners) > 1:
            return NO_CALL, MIN_PHRED

        index = int(winners[0])
        relative = np.exp(self._likelihoods - best)
        others = float(np.delete(relative, index).sum())
        consensus_error = others / (1.0 + others)

        error = probability_of_error_two_trials(self._pre_labeling_error, consensus_error)
        return BASES[index], probability_to_phred(error)

    @property
    def contributions(self) -> int:
        return int(self._counts.sum())

    def observations(self, base: str) -> int:
        index = BASE_INDEX.get(base.upper())
        if index is None:
            return 0
        return int(self._counts[index])

    def reset(self) -> None:
        self._likelihoods.fill(0.0)
        self._counts.fill(0)
