from __future__ import annotations


class ScanError(RuntimeError):
    """Base exception for the scanning pipeline."""


class ProducerUnavailable(ScanError):
    """The producer's tool is not installed or its probe failed."""


class ProducerExecutionError(ScanError):
    """A producer failed while scanning. Recorded per producer, never fatal."""


class ProducerTimeout(ProducerExecutionError):
    pass


class ContextReadError(ScanError):
    """Source lines around a finding could not be read."""


class SerializationError(ScanError):
    """A finalized result could not be serialized. Always propagated."""


class ConfigValidationError(ScanError, ValueError):
    pass
