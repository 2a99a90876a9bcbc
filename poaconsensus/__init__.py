"""
Poaconsensus: UMI consensus calling from partial-order alignment MSAs.

Reads sharing a molecular identifier are aligned by an external partial-order
alignment engine, and its MSA is reconciled with a per-base likelihood model to
produce a consensus read with qualities, depths and error counts.
"""

__version__ = "0.1.0"

from .core import main as poaconsensus_main
from .core import PoaConsensusCaller
from .types import SourceRead, ConsensusRead

__all__ = ["poaconsensus_main", "PoaConsensusCaller", "SourceRead", "ConsensusRead", "__version__"]
