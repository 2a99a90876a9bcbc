"""Error types raised while talking to the alignment engine or reconciling its MSA.

Base-call degradation (low depth, low quality, engine/model disagreement) is
not an error and never raises; it is handled per position by the no-call policy.
"""


class ConsensusError(RuntimeError):
    """Base class for failures that abort a whole consensus batch."""


class EngineLaunchError(ConsensusError):
    """The external alignment engine could not be started."""


class EngineClosedError(ConsensusError):
    """A batch was submitted to an engine that has already been shut down."""


class ProtocolError(ConsensusError):
    """The engine's output stream ended early or is out of step with the requests."""


class MsaConsistencyError(ConsensusError):
    """The MSA returned by the engine does not agree with the submitted reads."""
