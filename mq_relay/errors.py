"""
Exception hierarchy for the MQ relay

Every error the relay escalates derives from RelayError and carries the
process exit code the entry point should use for it.
"""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """
    Base class for relay errors

    Attributes:
        message: Human-readable error description
        cause: Original exception if wrapping
        context: Additional context for diagnostics
    """

    exit_code = 1

    def __init__(self, message: str, cause: Optional[BaseException] = None,
                 context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


class ConfigurationError(RelayError):
    """Configuration file, option or key material could not be loaded"""

    exit_code = 2


class TransportError(RelayError):
    """Queue connection or queue access failure"""

    exit_code = 3

    def __init__(self, message: str, completion_code: Optional[int] = None,
                 reason_code: Optional[int] = None, cause: Optional[BaseException] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, cause, context)
        self.completion_code = completion_code
        self.reason_code = reason_code

    def __str__(self) -> str:
        codes = f"Completion Code {self.completion_code} Reason Code {self.reason_code}"
        return f"{super().__str__()} ({codes})"


class IngestError(RelayError):
    """The sink rejected a submitted row"""

    exit_code = 4

    def __init__(self, first_error: Any, sequence_id: int, rows_submitted: int,
                 cause: Optional[BaseException] = None):
        message = f"Row with sequence id {sequence_id} rejected by sink: {first_error}"
        super().__init__(message, cause, {
            'sequence_id': sequence_id,
            'rows_submitted': rows_submitted,
        })
        self.first_error = first_error
        self.sequence_id = sequence_id
        self.rows_submitted = rows_submitted


class ConfirmationTimeoutError(RelayError):
    """The sink never reported the expected offset token within the retry budget"""

    exit_code = 1

    def __init__(self, expected: str, last_seen: Optional[str], retries: int, sequence_id: int):
        message = (
            f"Failed to receive required offset token {expected} after {retries} retries "
            f"(last seen: {last_seen}) at sequence id {sequence_id}"
        )
        super().__init__(message, context={
            'expected': expected,
            'last_seen': last_seen,
            'retries': retries,
            'sequence_id': sequence_id,
        })
        self.expected = expected
        self.last_seen = last_seen
        self.retries = retries
        self.sequence_id = sequence_id


class SinkError(RelayError):
    """Sink client failure outside row validation"""

    exit_code = 5
