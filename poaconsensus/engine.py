"""
Adapter for the external partial-order alignment engine (callerpp).

The engine runs as a long-lived subprocess speaking a line-oriented protocol
on stdin/stdout. A batch of queries is written as FASTA-like blocks followed
by a blank line; the engine answers every query, in order, with its name, the
consensus sequence and the MSA rows (one per input sequence, then one for the
consensus). Anything unexpected on the output stream is fatal for the batch.
"""

import logging
import os
import subprocess
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from poaconsensus.config import EngineOptions
from poaconsensus.exceptions import (
    ConsensusError,
    EngineClosedError,
    EngineLaunchError,
    MsaConsistencyError,
    ProtocolError,
)
from poaconsensus.msa import strip_gaps
from poaconsensus.types import AlignmentRequest, AlignmentResponse


class AlignmentEngine(ABC):
    """A request/response channel producing a consensus and MSA per query."""

    name: str = "engine"

    @abstractmethod
    def submit(self, requests: Sequence[AlignmentRequest]) -> List[AlignmentResponse]:
        """Align every request and return one response per request, in order."""

    def query(self, request: AlignmentRequest) -> AlignmentResponse:
        """Align a single request."""
        return self.submit([request])[0]

    def close(self) -> None:
        """Release any resources held by the engine."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class AlignmentEngineProcess(AlignmentEngine):
    """Runs callerpp as a subprocess and talks to it synchronously.

    Only one batch may be in flight at a time; ``submit`` holds a lock for the
    whole write/read round trip. After a protocol or consistency failure the
    output stream can no longer be trusted, so further batches are refused.
    """

    def __init__(self, options: Optional[EngineOptions] = None):
        self.options = options or EngineOptions()
        self._lock = threading.Lock()
        self._closed = False
        self._failed = False
        self._timed_out = False

        cmd = self.options.command()
        self.name = os.path.basename(cmd[0])
        logging.debug(f"Launching alignment engine: {' '.join(cmd)}")

        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="backslashreplace"
            )
        except OSError as e:
            # FileNotFoundError: engine not in PATH
            # PermissionError: engine not executable
            logging.error(f"Error launching alignment engine: {str(e)}")
            logging.error(f"Command: {' '.join(cmd)}")
            raise EngineLaunchError(f"Could not start alignment engine '{cmd[0]}': {e}") from e

        self._stderr_drain = threading.Thread(
            target=self._drain_stderr,
            name=f"{self.name}-stderr",
            daemon=True
        )
        self._stderr_drain.start()

    def _drain_stderr(self) -> None:
        for line in self._process.stderr:
            logging.debug(f"{self.name}: {line.rstrip()}")

    def submit(self, requests: Sequence[AlignmentRequest]) -> List[AlignmentResponse]:
        requests = list(requests)
        if not requests:
            return []

        for request in requests:
            request.check()

        with self._lock:
            if self._closed:
                raise EngineClosedError(f"Alignment engine {self.name} has been closed")
            if self._failed:
                reason = f"was killed after timing out ({self.options.timeout}s)" if self._timed_out \
                    else "is out of sync after an earlier failure"
                raise ProtocolError(f"Alignment engine {self.name} {reason}")

            watchdog = self._start_watchdog()
            try:
                self._write_batch(requests)
                return [self._read_response(request) for request in requests]
            except ConsensusError:
                self._failed = True
                raise
            finally:
                if watchdog is not None:
                    watchdog.cancel()

    def _write_batch(self, requests: List[AlignmentRequest]) -> None:
        stdin = self._process.stdin
        try:
            for request in requests:
                stdin.write(request.fasta_string())
            # A blank line tells the engine to process everything written so far
            stdin.write("\n")
            stdin.flush()
        except OSError as e:
            raise ProtocolError(self._failure_message(requests[0], f"engine stopped reading input: {e}")) from e

    def _read_response(self, request: AlignmentRequest) -> AlignmentResponse:
        name_line = self._read_line(request, "name line")
        if not name_line.startswith(">"):
            raise ProtocolError(self._failure_message(request, f"expected a '>' name line, got '{name_line}'"))
        name = name_line[1:]
        if name != request.name:
            raise ProtocolError(self._failure_message(request, f"query and result are out of order: result={name}"))

        consensus = self._read_line(request, "consensus line")

        # One row per input sequence, plus one for the consensus (always last)
        num_rows = len(request.sequences) + 1
        rows = [self._read_line(request, f"MSA row {i + 1} of {num_rows}") for i in range(num_rows)]

        expected = list(request.sequences) + [consensus]
        for index, (row, sequence) in enumerate(zip(rows, expected)):
            if strip_gaps(row) != sequence:
                label = "consensus" if index == len(request.sequences) else f"sequence {index + 1}"
                raise MsaConsistencyError(
                    f"MSA row {index + 1} for query {request.name} does not match {label}: "
                    f"row='{row}' expected='{sequence}'"
                )
        if len({len(row) for row in rows}) > 1:
            raise MsaConsistencyError(f"MSA rows for query {request.name} have differing widths: "
                                      f"{[len(row) for row in rows]}")

        # Move the consensus row to the front
        return AlignmentResponse(name=name, consensus=consensus, msa=(rows[-1],) + tuple(rows[:-1]))

    def _read_line(self, request: AlignmentRequest, what: str) -> str:
        line = self._process.stdout.readline()
        if not line:
            raise ProtocolError(self._failure_message(request, f"output ended while expecting {what}"))
        return line.rstrip("\r\n")

    def _failure_message(self, request: AlignmentRequest, reason: str) -> str:
        if self._timed_out:
            reason += f"; timed out after {self.options.timeout}s"
        return f"{self.name} failed on query {request.name} ({reason}):\n" + "\n".join(request.sequences)

    def _start_watchdog(self) -> Optional[threading.Timer]:
        if self.options.timeout is None:
            return None
        timer = threading.Timer(self.options.timeout, self._on_timeout)
        timer.daemon = True
        timer.start()
        return timer

    def _on_timeout(self) -> None:
        self._timed_out = True
        # Whatever is left on the output stream can no longer be trusted
        self._failed = True
        logging.error(f"Alignment engine {self.name} did not answer within {self.options.timeout}s, killing it")
        self._process.kill()

    def close(self) -> None:
        """Shut down the engine. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        for stream in (self._process.stdin, self._process.stdout):
            try:
                stream.close()
            except OSError as e:
                # BrokenPipeError when the engine has already exited
                logging.debug(f"Error closing {self.name} stream: {e}")

        self._process.terminate()
        try:
            self._process.wait(timeout=self.options.shutdown_timeout)
        except subprocess.TimeoutExpired:
            logging.warning(f"Alignment engine {self.name} did not exit after terminate, killing it")
            self._process.kill()
            self._process.wait()

        self._stderr_drain.join(timeout=self.options.shutdown_timeout)
        if self._stderr_drain.is_alive():
            logging.warning(f"Timed out waiting for {self.name} stderr to drain")
        else:
            self._process.stderr.close()
        logging.debug(f"Alignment engine {self.name} exited with code {self._process.returncode}")
