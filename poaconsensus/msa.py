"""
Reconciliation of an engine MSA with the per-position consensus model.

The engine returns its own consensus plus an MSA. Walking the MSA column by
column, every read that has a base in a consensus column contributes its next
unconsumed (base, quality) to the likelihood model. The model's call is then
checked against the engine's call and the depth and quality thresholds.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from poaconsensus.config import (
    COUNT_DTYPE,
    GAP_CHARS,
    MAX_COUNT,
    MISMATCH_QUAL,
    NO_CALL,
    NOT_ENOUGH_READS_QUAL,
    TOO_LOW_QUALITY_QUAL,
    ConsensusCallerOptions,
)
from poaconsensus.exceptions import MsaConsistencyError
from poaconsensus.model import ConsensusModel
from poaconsensus.types import AlignmentResponse, ConsensusRead, SourceRead


def strip_gaps(row: str, gap_chars: str = GAP_CHARS) -> str:
    """Remove gap characters from an aligned row."""
    return "".join(c for c in row if c not in gap_chars)


def is_gap(char: str) -> bool:
    return char in GAP_CHARS


def saturate(value: int, maximum: int = MAX_COUNT) -> int:
    """Clamp a non-negative count to the largest value its storage can hold."""
    return min(max(value, 0), maximum)


class MsaConsensusReconciler:
    """Builds a ConsensusRead from reads and the engine's answer for them.

    Owns a single ConsensusModel that is reset after every consensus column.
    """

    def __init__(self, options: Optional[ConsensusCallerOptions] = None):
        self.options = options or ConsensusCallerOptions()
        self.model = ConsensusModel(
            error_rate_pre_labeling=self.options.error_rate_pre_umi,
            error_rate_post_labeling=self.options.error_rate_post_umi
        )

    def reconcile(self, reads: Sequence[SourceRead], response: AlignmentResponse) -> ConsensusRead:
        """Call a consensus read from an engine response.

        Args:
            reads: Source reads, in the order their sequences were submitted
            response: Engine response for those reads

        Returns:
            ConsensusRead named after the response, one entry per consensus base

        Raises:
            MsaConsistencyError: If the MSA does not line up with the reads or consensus
        """
        self._check_msa(reads, response)

        consensus = response.consensus
        consensus_row = response.consensus_row
        read_rows = response.read_rows

        length = len(consensus)
        bases: List[str] = []
        quals = np.zeros(length, dtype=np.uint8)
        depths = np.zeros(length, dtype=COUNT_DTYPE)
        errors = np.zeros(length, dtype=COUNT_DTYPE)

        read_offsets = [0] * len(reads)
        consensus_offset = 0
        mismatches = 0
        self.model.reset()

        for msa_index in range(len(consensus_row)):
            if is_gap(consensus_row[msa_index]):
                # Bases inserted relative to the consensus are consumed but not called
                for read_index, read_row in enumerate(read_rows):
                    if not is_gap(read_row[msa_index]):
                        read_offsets[read_index] += 1
                continue

            for read_index, read_row in enumerate(read_rows):
                if is_gap(read_row[msa_index]):
                    continue
                read = reads[read_index]
                offset = read_offsets[read_index]
                self.model.add(read.bases[offset], read.quals[offset])
                read_offsets[read_index] += 1

            engine_base = consensus[consensus_offset]
            raw_base, raw_qual = self.model.call()
            depth = self.model.contributions

            if depth < self.options.min_reads:
                base, qual = NO_CALL, NOT_ENOUGH_READS_QUAL
            elif raw_qual < self.options.min_consensus_base_quality:
                base, qual = NO_CALL, TOO_LOW_QUALITY_QUAL
            elif raw_base != engine_base:
                base, qual = engine_base, MISMATCH_QUAL
                mismatches += 1
            else:
                base, qual = raw_base, raw_qual

            if raw_base == NO_CALL:
                num_errors = depth
            else:
                num_errors = depth - self.model.observations(raw_base)

            bases.append(base)
            quals[consensus_offset] = qual
            depths[consensus_offset] = saturate(depth)
            errors[consensus_offset] = saturate(num_errors)

            consensus_offset += 1
            self.model.reset()

        if consensus_offset != length:
            raise MsaConsistencyError(f"Called {consensus_offset} consensus positions for {response.name} "
                                      f"but the engine consensus has {length}")

        no_calls = bases.count(NO_CALL)
        logging.debug(f"{response.name}: consensus length={length}, reads={len(reads)}, "
                      f"no-calls={no_calls}, engine/model mismatches={mismatches}")

        return ConsensusRead(
            id=response.name,
            bases="".join(bases),
            quals=quals,
            depths=depths,
            errors=errors
        )

    def _check_msa(self, reads: Sequence[SourceRead], response: AlignmentResponse) -> None:
        if len(response.msa) != len(reads) + 1:
            raise MsaConsistencyError(f"Expected {len(reads) + 1} MSA rows for {response.name}, "
                                      f"got {len(response.msa)}")

        width = response.width
        for row in response.msa:
            if len(row) != width:
                raise MsaConsistencyError(f"MSA rows for {response.name} have differing widths: "
                                          f"{[len(r) for r in response.msa]}")

        if strip_gaps(response.consensus_row) != response.consensus:
            raise MsaConsistencyError(f"Consensus row for {response.name} does not match the consensus: "
                                      f"row='{response.consensus_row}' consensus='{response.consensus}'")
        for read, row in zip(reads, response.read_rows):
            if strip_gaps(row) != read.bases:
                raise MsaConsistencyError(f"MSA row for read {read.id} does not match its bases: "
                                          f"row='{row}' bases='{read.bases}'")
