"""Shared fixtures and helpers for the poaconsensus tests."""

import os
import sys
from typing import List, Sequence

import pytest

from poaconsensus.config import EngineOptions
from poaconsensus.engine import AlignmentEngine
from poaconsensus.types import AlignmentRequest, AlignmentResponse, SourceRead

FAKE_CALLERPP = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fake_callerpp.py")


def make_read(read_id: str, bases: str, qual: int = 30) -> SourceRead:
    return SourceRead(id=read_id, bases=bases, quals=[qual] * len(bases))


def padded_response(request: AlignmentRequest) -> AlignmentResponse:
    """Answer a request the way fake_callerpp does: longest input as consensus."""
    consensus = max(request.sequences, key=len)
    width = len(consensus)
    rows = tuple(seq.ljust(width, "-") for seq in request.sequences)
    return AlignmentResponse(name=request.name, consensus=consensus,
                             msa=(consensus.ljust(width, "-"),) + rows)


class PaddingEngine(AlignmentEngine):
    """In-process engine that records every batch it is given."""

    name = "padding"

    def __init__(self):
        self.batches: List[List[AlignmentRequest]] = []
        self.closed = False

    def submit(self, requests: Sequence[AlignmentRequest]) -> List[AlignmentResponse]:
        requests = list(requests)
        if not requests:
            return []
        self.batches.append(requests)
        return [padded_response(request) for request in requests]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def padding_engine():
    return PaddingEngine()


@pytest.fixture
def fake_engine_options():
    """Engine options that launch fake_callerpp with the current interpreter."""
    return EngineOptions(executable=[sys.executable, FAKE_CALLERPP], shutdown_timeout=5.0)
