"""
Batch cycle scheduling

Runs the relay's steady-state rhythm: drain the queue, wait the batching
window, then confirm the batch if anything was submitted. The wait happens
every cycle, before confirmation, so the polling cadence is the same whether
or not the cycle did any work.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from mq_relay.batch import BatchContext, BatchDrainer
from mq_relay.clock import Clock, SystemClock
from mq_relay.confirmer import CommitConfirmer
from mq_relay.correlation import with_correlation_id
from mq_relay.errors import (
    ConfirmationTimeoutError,
    IngestError,
    RelayError,
    SinkError,
    TransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SECONDS = 30


class CycleState(Enum):
    IDLE = 'idle'
    DRAINING = 'draining'
    CONFIRMING = 'confirming'


class RelayExit(Enum):
    """How a scheduler run ended"""
    STOPPED = 'stopped'
    CONFIRMATION_TIMEOUT = 'confirmation_timeout'
    TRANSPORT_ERROR = 'transport_error'
    INGEST_ERROR = 'ingest_error'
    SINK_ERROR = 'sink_error'
    FAILED = 'failed'


_EXIT_BY_ERROR = (
    (ConfirmationTimeoutError, RelayExit.CONFIRMATION_TIMEOUT),
    (TransportError, RelayExit.TRANSPORT_ERROR),
    (IngestError, RelayExit.INGEST_ERROR),
    (SinkError, RelayExit.SINK_ERROR),
)


def exit_for_error(error: RelayError) -> RelayExit:
    for error_type, relay_exit in _EXIT_BY_ERROR:
        if isinstance(error, error_type):
            return relay_exit
    return RelayExit.FAILED


@dataclass
class RelayOutcome:
    """Typed result of a scheduler run"""
    status: RelayExit
    context: BatchContext
    cycles: int
    error: Optional[RelayError] = None

    @property
    def exit_code(self) -> int:
        if self.error is not None:
            return self.error.exit_code
        return 0

    @property
    def ok(self) -> bool:
        return self.status is RelayExit.STOPPED


class BatchCycleScheduler:
    """
    Drives drain -> idle wait -> confirm cycles until a fatal error

    The loop has no terminal state of its own: it runs until a RelayError
    ends it, or until max_cycles cycles have completed when a bound is given.
    """

    def __init__(self, drainer: BatchDrainer, confirmer: CommitConfirmer,
                 idle_seconds: float = DEFAULT_BATCH_SECONDS, clock: Optional[Clock] = None,
                 status=None, structured_logger=None):
        self.drainer = drainer
        self.confirmer = confirmer
        self.idle_seconds = idle_seconds
        self.clock = clock or SystemClock()
        self.status = status
        self.structured_logger = structured_logger
        self.state = CycleState.IDLE

    def run_cycle(self, context: BatchContext) -> BatchContext:
        """
        Run one drain/wait/confirm cycle

        Args:
            context: Sequence state at the start of the cycle

        Returns:
            BatchContext: State after the cycle

        Raises:
            RelayError: Any transport, ingest, sink or confirmation failure
        """
        started = self.clock.monotonic()

        self.state = CycleState.DRAINING
        result = self.drainer.drain(context)
        context = result.context

        self.state = CycleState.IDLE
        self.clock.sleep(self.idle_seconds)

        if result.submitted:
            self.state = CycleState.CONFIRMING
            try:
                offset_token = self.confirmer.confirm(result)
            except RelayError as e:
                e.context.setdefault('next_sequence_id', context.next_sequence_id)
                raise
            context = context.confirmed(offset_token)
            if self.status:
                self.status.record_confirmation(offset_token)
            self.state = CycleState.IDLE

        if self.status:
            self.status.record_cycle()
        if self.structured_logger and result.submitted:
            self.structured_logger.log_cycle_complete(
                rows_submitted=result.rows_submitted,
                next_sequence_id=context.next_sequence_id,
                confirmed_offset=context.last_confirmed_offset,
                duration_seconds=self.clock.monotonic() - started,
            )
        return context

    def run(self, context: Optional[BatchContext] = None, max_cycles: Optional[int] = None) -> RelayOutcome:
        """
        Run cycles until a fatal error, or until max_cycles have completed

        Errors are returned in the outcome rather than raised; the caller
        decides whether to terminate the process.

        Args:
            context: Starting sequence state (defaults to sequence id 1)
            max_cycles: Optional bound on the number of cycles

        Returns:
            RelayOutcome: How the run ended and the last sequence state
        """
        context = context or BatchContext()
        cycles = 0

        while max_cycles is None or cycles < max_cycles:
            try:
                with with_correlation_id():
                    context = self.run_cycle(context)
            except RelayError as e:
                # Rows submitted before the failure still consumed their sequence ids
                next_sequence_id = e.context.get('next_sequence_id', context.next_sequence_id)
                context = replace(context, next_sequence_id=next_sequence_id)
                self.state = CycleState.IDLE
                logger.warning(f"Relay loop stopped after {cycles} completed cycles ({type(e).__name__})")
                return RelayOutcome(status=exit_for_error(e), context=context, cycles=cycles, error=e)
            cycles += 1

        return RelayOutcome(status=RelayExit.STOPPED, context=context, cycles=cycles)
