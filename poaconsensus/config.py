"""Configuration for the engine adapter and the consensus caller."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np

from poaconsensus.types import AlignmentAlgorithm

# Base emitted when a position is masked
NO_CALL = 'N'

# Quality emitted when masking to N due to insufficient input reads
NOT_ENOUGH_READS_QUAL = 0
# Quality emitted when masking to N due to too low consensus quality
TOO_LOW_QUALITY_QUAL = 2
# Quality emitted when the engine's consensus call mismatches the model's call
MISMATCH_QUAL = 3

MIN_PHRED = 2
MAX_PHRED = 93

# Depth and error counts are stored as int16 and saturate here
COUNT_DTYPE = np.int16
MAX_COUNT = int(np.iinfo(COUNT_DTYPE).max)

# Characters the engine uses for gaps in MSA rows
GAP_CHARS = "-. "


@dataclass
class EngineOptions:
    """Launch parameters for the external alignment engine.

    Attributes:
        executable: Engine path, or argv prefix (e.g. interpreter and script)
        match_score: Score for a matching base (-A)
        mismatch_score: Score for a mismatching base (-B)
        gap_score: Score for a gap (-O)
        algorithm: Alignment mode (-a)
        timeout: Seconds to wait for one batch before killing the engine (None = wait forever)
        shutdown_timeout: Seconds to wait for the process and stderr drain on close
    """
    executable: Union[str, Sequence[str]] = 'callerpp'
    match_score: int = 5
    mismatch_score: int = -4
    gap_score: int = -8
    algorithm: AlignmentAlgorithm = AlignmentAlgorithm.LOCAL
    timeout: Optional[float] = None
    shutdown_timeout: float = 2.0

    def __post_init__(self):
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.shutdown_timeout < 0:
            raise ValueError(f"shutdown_timeout must be non-negative, got {self.shutdown_timeout}")

    def command(self) -> List[str]:
        """Build the engine argv; -m always requests MSA output."""
        if isinstance(self.executable, str):
            cmd = [self.executable]
        else:
            cmd = [str(part) for part in self.executable]
        cmd.extend([
            "-A", str(self.match_score),
            "-B", str(self.mismatch_score),
            "-O", str(self.gap_score),
            "-a", str(self.algorithm.value),
            "-m",
        ])
        return cmd

    @classmethod
    def from_args(cls, args) -> 'EngineOptions':
        """Create options from command-line arguments."""
        return cls(
            executable=getattr(args, 'engine', 'callerpp'),
            match_score=getattr(args, 'match_score', 5),
            mismatch_score=getattr(args, 'mismatch_score', -4),
            gap_score=getattr(args, 'gap_score', -8),
            algorithm=AlignmentAlgorithm.from_name(getattr(args, 'algorithm', 'local')),
            timeout=getattr(args, 'timeout', None),
        )


@dataclass
class ConsensusCallerOptions:
    """Options for calling consensus reads from read groups.

    Attributes:
        error_rate_pre_umi: Phred-scaled error rate before UMI attachment
        error_rate_post_umi: Phred-scaled error rate after UMI attachment
        min_reads: Minimum contributing reads to call a base
        min_consensus_base_quality: Minimum model quality to call a base
        batch_size: Maximum requests per engine batch in consensus_call_many
        engine: Engine launch options, used when the caller owns its engine
    """
    error_rate_pre_umi: int = 45
    error_rate_post_umi: int = 40
    min_reads: int = 1
    min_consensus_base_quality: int = MIN_PHRED
    batch_size: int = 100
    engine: EngineOptions = field(default_factory=EngineOptions)

    def __post_init__(self):
        if self.min_reads < 1:
            raise ValueError(f"min_reads must be at least 1, got {self.min_reads}")
        if self.min_consensus_base_quality < 0:
            raise ValueError(f"min_consensus_base_quality must be non-negative, "
                             f"got {self.min_consensus_base_quality}")
        if self.error_rate_pre_umi < 0 or self.error_rate_post_umi < 0:
            raise ValueError("error rates must be non-negative Phred values")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")

    @classmethod
    def from_args(cls, args) -> 'ConsensusCallerOptions':
        """Create options from command-line arguments."""
        return cls(
            error_rate_pre_umi=getattr(args, 'error_rate_pre_umi', 45),
            error_rate_post_umi=getattr(args, 'error_rate_post_umi', 40),
            min_reads=getattr(args, 'min_reads', 1),
            min_consensus_base_quality=getattr(args, 'min_consensus_base_quality', MIN_PHRED),
            engine=EngineOptions.from_args(args),
        )
