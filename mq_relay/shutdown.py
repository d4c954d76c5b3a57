"""
Failure reporting and ordered shutdown for the relay
"""

import logging
from enum import Enum
from typing import Iterator, Optional

from mq_relay.errors import (
    ConfigurationError,
    ConfirmationTimeoutError,
    IngestError,
    SinkError,
    TransportError,
)

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    TRANSPORT = 'transport'
    VALIDATION = 'validation'
    CONFIRMATION_TIMEOUT = 'confirmation_timeout'
    CONFIGURATION = 'configuration'
    SINK = 'sink'
    UNEXPECTED = 'unexpected'


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to the relay's error taxonomy"""
    if isinstance(error, TransportError):
        return ErrorKind.TRANSPORT
    if isinstance(error, IngestError):
        return ErrorKind.VALIDATION
    if isinstance(error, ConfirmationTimeoutError):
        return ErrorKind.CONFIRMATION_TIMEOUT
    if isinstance(error, ConfigurationError):
        return ErrorKind.CONFIGURATION
    if isinstance(error, SinkError):
        return ErrorKind.SINK
    return ErrorKind.UNEXPECTED


def iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Yield the causal chain of an exception, outermost cause first"""
    seen = {id(error)}
    current = error.__cause__ or error.__context__
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def report_failure(error: BaseException, structured_logger=None) -> ErrorKind:
    """
    Log a fatal error with its diagnostics and full causal chain

    Args:
        error: The error that ended the run
        structured_logger: Optional StructuredLogger receiving a relay_failure event

    Returns:
        ErrorKind: Classification of the error
    """
    kind = classify_error(error)
    details = {}

    if kind is ErrorKind.TRANSPORT:
        details = {'completion_code': error.completion_code, 'reason_code': error.reason_code}
        logger.error(f"An IBM MQ error occurred: Completion Code {error.completion_code} "
                     f"Reason Code {error.reason_code} - {error.message}")
    elif kind is ErrorKind.CONFIRMATION_TIMEOUT:
        details = {
            'expected_offset': error.expected,
            'last_seen_offset': error.last_seen,
            'retries': error.retries,
            'sequence_id': error.sequence_id,
        }
        logger.error(f"Failed to receive required offset token in sink: {error.expected} after "
                     f"{error.retries} retries ({error.last_seen}) at sequence id {error.sequence_id}")
    elif kind is ErrorKind.VALIDATION:
        details = {'sequence_id': error.sequence_id, 'rows_submitted': error.rows_submitted}
        logger.error(f"Sink rejected row: {error.message}")
    else:
        logger.error(f"Relay failed ({kind.value}): {error}")

    for cause in iter_causes(error):
        logger.error(f"... Caused by {type(cause).__name__}: {cause}")

    if structured_logger:
        structured_logger.log_relay_failure(kind.value, str(error), details)
    return kind


class RelayShutdown:
    """
    Guarantees ordered teardown of the relay's resources

    On exit, whatever the reason, the queue handle is closed if open, the
    transport is disconnected if connected, the ingestion channel is closed,
    and the final counters are reported. A failing step is logged and does
    not prevent the following ones. The exception in flight, if any, is
    never suppressed.

    Usage:
        with RelayShutdown(source, channel, status, structured_logger):
            outcome = scheduler.run()
    """

    def __init__(self, source=None, channel=None, status=None, structured_logger=None):
        self.source = source
        self.channel = channel
        self.status = status
        self.structured_logger = structured_logger
        self.completed_steps = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is KeyboardInterrupt:
            logger.warning("Interrupted - shutting down relay")
        self.teardown()
        return False

    def teardown(self):
        source = self.source
        if source is not None and source.is_open:
            self._run_step('close_queue', source.close)
        if source is not None and source.is_connected:
            logger.debug("Disconnecting from the queue manager")
            self._run_step('disconnect_transport', source.disconnect)
        if self.channel is not None and callable(getattr(self.channel, 'close', None)):
            self._run_step('close_channel', self.channel.close)
        self.report_final_status()

    def report_final_status(self) -> Optional[dict]:
        if self.status is None:
            return None
        summary = self.status.summary()
        logger.info(f"Total #Messages read from queue: {summary['messages_read']}")
        logger.info(f"Final offset in sink: {summary['last_confirmed_offset']}")
        if self.structured_logger:
            self.structured_logger.log_relay_stop(summary)
        self.completed_steps.append('report_status')
        return summary

    def _run_step(self, name: str, step):
        try:
            step()
            self.completed_steps.append(name)
        except Exception:
            logger.exception(f"Shutdown step '{name}' failed")
