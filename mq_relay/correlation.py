"""
Correlation ID management for relay cycles

Each drain/confirm cycle runs under its own correlation ID so that every
log line and structured event emitted for one micro-batch can be grouped
together downstream.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


def generate_correlation_id() -> str:
    """Generate a unique UUID-based correlation ID"""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """
    Get the current correlation ID, generating and storing one if unset

    Returns:
        str: Current or new correlation ID
    """
    cid = correlation_id.get()
    if cid is None:
        cid = generate_correlation_id()
        correlation_id.set(cid)
    return cid


def clear_correlation_id() -> None:
    correlation_id.set(None)


class CorrelationContext:
    """Scoped correlation ID, restored to the previous value on exit"""

    def __init__(self, cid: Optional[str] = None):
        self.cid = cid or generate_correlation_id()
        self.token = None

    def __enter__(self) -> str:
        self.token = correlation_id.set(self.cid)
        return self.cid

    def __exit__(self, exc_type, exc_val, exc_tb):
        correlation_id.reset(self.token)
        return False


def with_correlation_id(cid: Optional[str] = None) -> CorrelationContext:
    """
    Context manager for a scoped correlation ID

    Example:
        >>> with with_correlation_id() as cid:
        ...     # every event logged for this cycle carries cid
        ...     pass
    """
    return CorrelationContext(cid)
