#!/usr/bin/env python3

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from Bio import SeqIO
from tqdm import tqdm

try:
    from poaconsensus import __version__
except ImportError:
    # Fallback for when running as a script directly
    __version__ = "dev"

from poaconsensus.config import NO_CALL, ConsensusCallerOptions
from poaconsensus.engine import AlignmentEngine, AlignmentEngineProcess
from poaconsensus.exceptions import ConsensusError
from poaconsensus.msa import MsaConsensusReconciler
from poaconsensus.types import AlignmentAlgorithm, AlignmentRequest, ConsensusRead, SourceRead


class PoaConsensusCaller:
    """Calls one consensus read per group of reads sharing a molecular identifier.

    The partial-order alignment engine supplies a consensus and MSA for each
    group; the MSA is then reconciled with the per-base likelihood model.

    When no engine is given, an AlignmentEngineProcess is launched from
    ``options.engine`` and shut down by ``close``. A caller-supplied engine is
    left open.
    """

    def __init__(self, options: Optional[ConsensusCallerOptions] = None,
                 engine: Optional[AlignmentEngine] = None):
        self.options = options or ConsensusCallerOptions()
        self._owns_engine = engine is None
        self.engine = engine if engine is not None else AlignmentEngineProcess(self.options.engine)
        self.reconciler = MsaConsensusReconciler(self.options)

    def consensus_call(self, reads: Sequence[SourceRead]) -> Optional[ConsensusRead]:
        """Call the consensus of one read group.

        Returns None for an empty group without contacting the engine.
        """
        if not reads:
            return None
        request = AlignmentRequest.from_reads(reads)
        response = self.engine.query(request)
        return self.reconciler.reconcile(reads, response)

    def consensus_call_many(self, groups: Sequence[Sequence[SourceRead]],
                            show_progress: bool = False) -> List[Optional[ConsensusRead]]:
        """Call consensus reads for many groups, batching requests to the engine.

        Results are returned in the order of ``groups``; empty groups yield None.
        Any protocol or MSA failure aborts the whole call.
        """
        results: List[Optional[ConsensusRead]] = [None] * len(groups)
        pending = [i for i, group in enumerate(groups) if group]
        if len(pending) < len(groups):
            logging.debug(f"Skipping {len(groups) - len(pending)} empty read groups")

        batch_size = self.options.batch_size
        with tqdm(total=len(pending), desc="Calling consensus", unit="group",
                  disable=not show_progress) as pbar:
            for start in range(0, len(pending), batch_size):
                batch = pending[start:start + batch_size]
                requests = [AlignmentRequest.from_reads(groups[i]) for i in batch]
                responses = self.engine.submit(requests)
                for i, response in zip(batch, responses):
                    results[i] = self.reconciler.reconcile(groups[i], response)
                    pbar.update(1)

        return results

    def close(self) -> None:
        if self._owns_engine:
            self.engine.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def write_consensus_table(read: ConsensusRead, handle) -> None:
    """Write a per-position table of base, quality, depth and errors."""
    handle.write("position\tbase\tquality\tdepth\terrors\n")
    for position, base in enumerate(read.bases):
        handle.write(f"{position + 1}\t{base}\t{int(read.quals[position])}\t"
                     f"{int(read.depths[position])}\t{int(read.errors[position])}\n")


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description="Call a consensus read from reads of a single molecule using a partial-order aligner."
    )
    parser.add_argument("input_file", help="FASTQ file holding the reads of one molecule")
    parser.add_argument("--engine", default="callerpp",
                        help="Path to the alignment engine executable (default: callerpp)")
    parser.add_argument("--match-score", type=int, default=5,
                        help="Alignment score for a match (default: 5)")
    parser.add_argument("--mismatch-score", type=int, default=-4,
                        help="Alignment score for a mismatch (default: -4)")
    parser.add_argument("--gap-score", type=int, default=-8,
                        help="Alignment score for a gap (default: -8)")
    parser.add_argument("--algorithm", default="local",
                        choices=[a.cli_name for a in AlignmentAlgorithm],
                        help="Alignment mode (default: local)")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Seconds to wait for the engine before giving up (default: wait indefinitely)")
    parser.add_argument("--min-reads", type=int, default=1,
                        help="Minimum reads supporting a position to call a base (default: 1)")
    parser.add_argument("--min-consensus-base-quality", type=int, default=2,
                        help="Minimum consensus base quality to call a base (default: 2)")
    parser.add_argument("--error-rate-pre-umi", type=int, default=45,
                        help="Phred-scaled error rate prior to UMI attachment (default: 45)")
    parser.add_argument("--error-rate-post-umi", type=int, default=40,
                        help="Phred-scaled error rate after UMI attachment (default: 40)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--version", action="version",
                        version=f"poaconsensus {__version__}",
                        help="Show program's version number and exit")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)

    log_format = '%(asctime)s - %(levelname)s - %(message)s'
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format=log_format
    )

    try:
        options = ConsensusCallerOptions.from_args(args)
    except ValueError as e:
        logging.error(f"Invalid options: {e}")
        sys.exit(2)

    logging.info(f"Reading sequences from {args.input_file}")
    reads = [SourceRead.from_seqrecord(record) for record in SeqIO.parse(args.input_file, "fastq")]
    logging.info(f"Loaded {len(reads)} reads")

    if not reads:
        logging.warning("No reads found in input file. Nothing to call.")
        sys.exit(0)

    try:
        with PoaConsensusCaller(options) as caller:
            consensus = caller.consensus_call(reads)
    except ConsensusError as e:
        logging.error(f"Consensus calling failed: {e}")
        sys.exit(1)

    no_calls = consensus.bases.count(NO_CALL)
    logging.info(f"Consensus {consensus.id}: length={len(consensus)}, no-calls={no_calls}, "
                 f"error rate={consensus.error_rate():.4f}")
    write_consensus_table(consensus, sys.stdout)


if __name__ == "__main__":
    main()
