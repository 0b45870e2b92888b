from __future__ import annotations


class ArbitrageMonitorError(Exception):
    """Base class for every error raised by the monitor."""


class SourceUnavailable(ArbitrageMonitorError):
    """A venue's read call failed, timed out or returned a malformed result."""

    def __init__(self, venue: str, reason: str) -> None:
        super().__init__(f"{venue}: {reason}")
        self.venue = venue
        self.reason = reason


class ChainMismatch(ArbitrageMonitorError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Chain ID mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StorageError(ArbitrageMonitorError):
    pass


class AuditLogError(ArbitrageMonitorError):
    pass


class ConfigError(ArbitrageMonitorError, ValueError):
    pass
