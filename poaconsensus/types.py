"""Shared data structures for poaconsensus."""

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Sequence, Tuple

import numpy as np
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord


class AlignmentAlgorithm(Enum):
    """Alignment mode understood by the engine's ``-a`` flag."""
    LOCAL = 0
    GLOBAL = 1
    SEMI_GLOBAL = 2

    @classmethod
    def from_name(cls, name: str) -> 'AlignmentAlgorithm':
        """Look up an algorithm by CLI-style name (e.g. 'semi-global')."""
        key = name.strip().upper().replace('-', '_')
        try:
            return cls[key]
        except KeyError:
            choices = ', '.join(a.cli_name for a in cls)
            raise ValueError(f"Unknown alignment algorithm '{name}' (choose from {choices})") from None

    @property
    def cli_name(self) -> str:
        return self.name.lower().replace('_', '-')


@dataclass(frozen=True)
class SourceRead:
    """A raw read belonging to one molecule (UMI group).

    Attributes:
        id: Read identifier
        bases: Nucleotide sequence
        quals: Phred base qualities, one per base
    """
    id: str
    bases: str
    quals: Tuple[int, ...]

    def __post_init__(self):
        # Freeze whatever sequence type the caller handed us
        object.__setattr__(self, 'quals', tuple(int(q) for q in self.quals))
        if len(self.bases) != len(self.quals):
            raise ValueError(f"Read {self.id} has {len(self.bases)} bases but {len(self.quals)} qualities")

    def __len__(self) -> int:
        return len(self.bases)

    @classmethod
    def from_seqrecord(cls, record: SeqRecord) -> 'SourceRead':
        """Build a SourceRead from a Biopython FASTQ record."""
        quals = record.letter_annotations.get('phred_quality')
        if quals is None:
            raise ValueError(f"Record {record.id} has no phred_quality annotation")
        return cls(id=record.id, bases=str(record.seq), quals=quals)


class AlignmentRequest(NamedTuple):
    """One query for the alignment engine: the raw sequences of one read group."""
    name: str
    sequences: Tuple[str, ...]

    def fasta_string(self) -> str:
        """Render the request in the engine's input framing."""
        return ">" + self.name + "\n" + "".join(seq + "\n" for seq in self.sequences)

    def check(self) -> None:
        """Reject requests the line-oriented framing cannot carry.

        An empty sequence would be written as a bare newline, which the engine
        takes as the end of the batch.

        Raises:
            ValueError: If the name or a sequence breaks the framing
        """
        if not self.sequences:
            raise ValueError(f"Request {self.name} has no sequences")
        if "\n" in self.name or "\r" in self.name:
            raise ValueError(f"Request name {self.name!r} contains a line break")
        for i, seq in enumerate(self.sequences):
            if not seq:
                raise ValueError(f"Request {self.name}: sequence {i} is empty")
            if "\n" in seq or "\r" in seq:
                raise ValueError(f"Request {self.name}: sequence {i} contains a line break")

    @classmethod
    def from_reads(cls, reads: Sequence[SourceRead]) -> 'AlignmentRequest':
        request = cls(name=reads[0].id, sequences=tuple(read.bases for read in reads))
        request.check()
        return request


class AlignmentResponse(NamedTuple):
    """Engine answer to one AlignmentRequest.

    The MSA holds the consensus's own aligned row first, then one aligned row
    per submitted sequence in submission order. All rows share the same width.
    """
    name: str
    consensus: str
    msa: Tuple[str, ...]

    @property
    def consensus_row(self) -> str:
        return self.msa[0]

    @property
    def read_rows(self) -> Tuple[str, ...]:
        return self.msa[1:]

    @property
    def width(self) -> int:
        return len(self.msa[0]) if self.msa else 0


@dataclass
class ConsensusRead:
    """Consensus call for one molecule.

    All four per-position sequences have the length of the engine consensus.
    """
    id: str
    bases: str
    quals: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint8))
    depths: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int16))
    errors: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int16))

    def __len__(self) -> int:
        return len(self.bases)

    def to_seqrecord(self) -> SeqRecord:
        """Convert to a Biopython record carrying qualities, depths and errors."""
        return SeqRecord(
            Seq(self.bases),
            id=self.id,
            description="",
            letter_annotations={
                'phred_quality': [int(q) for q in self.quals],
                'depth': [int(d) for d in self.depths],
                'errors': [int(e) for e in self.errors],
            }
        )

    def error_rate(self) -> float:
        """Fraction of contributing observations that disagreed with the call."""
        total = int(self.depths.sum())
        if total == 0:
            return 0.0
        return float(self.errors.sum()) / total

