"""
Commit confirmation

The sink persists rows asynchronously and only exposes its latest committed
offset token, so a submitted micro-batch is confirmed by polling that token
until it equals the batch's last sequence id.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from mq_relay.clock import Clock, SystemClock
from mq_relay.errors import ConfirmationTimeoutError, RelayError, SinkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded polling policy for commit confirmation

    Attributes:
        max_retries: Re-polls after the first poll; the last one ends the wait unmatched or not
        interval_seconds: Wait before the first re-poll
        backoff_multiplier: Growth factor per re-poll (1.0 keeps the interval fixed)
        max_interval_seconds: Upper bound on any single wait
    """
    max_retries: int = 100
    interval_seconds: float = 1.0
    backoff_multiplier: float = 1.0
    max_interval_seconds: float = 30.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        if self.interval_seconds < 0:
            raise ValueError(f"interval_seconds must be non-negative, got {self.interval_seconds}")
        if self.backoff_multiplier < 1.0:
            raise ValueError(f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}")

    def delay_for(self, attempt: int) -> float:
        """
        Wait before re-poll number attempt (zero-based)

        >>> RetryPolicy(interval_seconds=1.0, backoff_multiplier=2.0).delay_for(3)
        8.0
        """
        delay = self.interval_seconds * (self.backoff_multiplier ** attempt)
        return min(delay, max(self.max_interval_seconds, self.interval_seconds))

    def max_total_wait(self) -> float:
        return sum(self.delay_for(attempt) for attempt in range(self.max_retries))


class CommitConfirmer:
    """Blocks until the sink confirms a drained micro-batch"""

    def __init__(self, channel, policy: Optional[RetryPolicy] = None, clock: Optional[Clock] = None,
                 status=None, metrics=None):
        self.channel = channel
        self.policy = policy or RetryPolicy()
        self.clock = clock or SystemClock()
        self.status = status
        self.metrics = metrics

    def confirm(self, drain_result) -> str:
        """
        Wait for the sink to commit everything up to the drain's last sequence id

        Args:
            drain_result: DrainResult of a pass that submitted at least one row

        Returns:
            str: The confirmed offset token

        Raises:
            ConfirmationTimeoutError: Token did not match within the retry budget
            SinkError: The sink client failed while polling
        """
        expected = drain_result.expected_offset
        sequence_id = drain_result.context.last_sequence_id
        started = self.clock.monotonic()

        offset_token = self._poll()
        retries = 0
        while offset_token != expected:
            if self.policy.max_retries == 0:
                raise ConfirmationTimeoutError(expected, offset_token, retries, sequence_id)

            logger.debug(f"Offset needed: {expected} - offset from sink: {offset_token}")
            self.clock.sleep(self.policy.delay_for(retries))
            offset_token = self._poll()
            retries += 1
            if self.status:
                self.status.record_confirm_retry()
            # The poll that exhausts the budget ends the wait whatever it returned
            if retries >= self.policy.max_retries:
                raise ConfirmationTimeoutError(expected, offset_token, retries, sequence_id)

        waited = self.clock.monotonic() - started
        if self.metrics:
            self.metrics.emit_counter('confirm_retries', retries)
            self.metrics.emit_duration('confirm_wait_seconds', waited)
        logger.info(f"Sink confirmed offset {offset_token} after {retries} retries")
        return offset_token

    def _poll(self) -> Optional[str]:
        try:
            token = self.channel.latest_committed_offset()
        except RelayError:
            raise
        except Exception as e:
            raise SinkError("Failed to read latest committed offset token", cause=e) from e
        return None if token is None else str(token)
