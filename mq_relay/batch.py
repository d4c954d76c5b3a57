"""
Micro-batch draining
Moves the queue's visible backlog into the ingestion channel, one row per message
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Optional

from mq_relay.errors import IngestError, RelayError, SinkError
from mq_relay.rows import CONTENT_COLUMN, build_row

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchContext:
    """
    Sequence state threaded from one cycle to the next

    next_sequence_id is the tag the next submitted row will carry; it only
    ever grows. last_confirmed_offset is the latest token the sink confirmed.
    """
    next_sequence_id: int = 1
    last_confirmed_offset: Optional[str] = None

    @property
    def last_sequence_id(self) -> int:
        return self.next_sequence_id - 1

    def advance(self) -> 'BatchContext':
        return replace(self, next_sequence_id=self.next_sequence_id + 1)

    def confirmed(self, offset_token: str) -> 'BatchContext':
        return replace(self, last_confirmed_offset=offset_token)


@dataclass(frozen=True)
class DrainResult:
    """Outcome of one drain pass"""
    context: BatchContext
    rows_submitted: int = 0

    @property
    def submitted(self) -> bool:
        return self.rows_submitted > 0

    @property
    def expected_offset(self) -> str:
        """Offset token the sink must report once this batch is durable"""
        return str(self.context.last_sequence_id)


class BatchDrainer:
    """Drains the queue source into the ingestion channel"""

    def __init__(self, source, channel, status=None, metrics=None,
                 content_column: str = CONTENT_COLUMN, debug: bool = False):
        """
        Args:
            source: Connected BaseQueueSource
            channel: Open ingestion channel
            status: Optional RelayStatus updated per message and submission
            metrics: Optional MetricsCollector
            content_column: Column receiving the message content
            debug: Log every message body at DEBUG level
        """
        self.source = source
        self.channel = channel
        self.status = status
        self.metrics = metrics
        self.content_column = content_column
        self.debug = debug

    def drain(self, context: BatchContext) -> DrainResult:
        """
        Drain every message currently visible on the queue

        Stops at the first row the sink rejects; rows already submitted in the
        pass stay submitted.

        Args:
            context: Sequence state at the start of the pass

        Returns:
            DrainResult: Advanced context and number of rows submitted

        Raises:
            IngestError: The sink rejected a row
            TransportError: The queue could not be read
            SinkError: The sink client failed while submitting
        """
        started = time.monotonic()
        rows_submitted = 0
        messages_read = 0

        try:
            while self.source.pending_count() > 0:
                payload = self.source.receive()
                if payload is None:
                    # Depth still counts uncommitted puts; retry after the idle window
                    logger.debug("Queue depth is positive but no message is available, ending pass")
                    break

                messages_read += 1
                if self.status:
                    self.status.record_message_read()
                if self.debug:
                    logger.debug(f"<msg>{payload!r}</msg>")

                row = build_row(payload, self.content_column)
                sequence_id = context.next_sequence_id
                response = self._submit(row, sequence_id)

                if not response.ok:
                    raise IngestError(response.first_error, sequence_id, rows_submitted)

                context = context.advance()
                rows_submitted += 1
                if self.status:
                    self.status.record_submission(sequence_id)
        except RelayError as e:
            e.context.setdefault('next_sequence_id', context.next_sequence_id)
            e.context.setdefault('rows_submitted', rows_submitted)
            raise
        finally:
            if self.metrics and messages_read:
                self.metrics.emit_counter('messages_read', messages_read)
            if self.metrics and rows_submitted:
                self.metrics.emit_counter('rows_submitted', rows_submitted)
                self.metrics.emit_duration('drain_duration', time.monotonic() - started)

        if rows_submitted:
            logger.info(f"Submitted {rows_submitted} rows (sequence ids "
                        f"{context.next_sequence_id - rows_submitted}..{context.last_sequence_id})")
        return DrainResult(context=context, rows_submitted=rows_submitted)

    def _submit(self, row, sequence_id: int):
        try:
            return self.channel.submit(row, str(sequence_id))
        except RelayError:
            raise
        except Exception as e:
            raise SinkError(f"Failed to submit row with sequence id {sequence_id}", cause=e) from e
