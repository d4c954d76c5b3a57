"""
Status tracking for a relay run
Holds the counters reported when the relay shuts down
"""

import logging
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class RelayStatus:
    """
    Tracks progress of one relay process

    Counters:
    - messages_read: messages received from the queue
    - rows_submitted: rows accepted by the sink channel
    - cycles: completed batch cycles
    - confirmations: micro-batches confirmed durable
    - confirm_retries: offset polls that did not yet match
    - last_confirmed_offset: latest offset token confirmed by the sink
    - next_sequence_id: sequence id the next submitted row will carry

    Nothing here is persisted: a restarted process starts from zero.
    """

    def __init__(self):
        self.messages_read = 0
        self.rows_submitted = 0
        self.cycles = 0
        self.confirmations = 0
        self.confirm_retries = 0
        self.last_confirmed_offset: Optional[str] = None
        self.next_sequence_id = 1
        self.started_at = time.time()

    def record_message_read(self):
        self.messages_read += 1

    def record_submission(self, sequence_id: int):
        self.rows_submitted += 1
        self.next_sequence_id = sequence_id + 1

    def record_confirm_retry(self):
        self.confirm_retries += 1

    def record_confirmation(self, offset_token: str):
        self.confirmations += 1
        self.last_confirmed_offset = offset_token

    def record_cycle(self):
        self.cycles += 1

    def summary(self) -> Dict[str, Any]:
        """
        Get summary of the run

        Returns:
            dict: Counters plus elapsed run time in seconds
        """
        return {
            'messages_read': self.messages_read,
            'rows_submitted': self.rows_submitted,
            'cycles': self.cycles,
            'confirmations': self.confirmations,
            'confirm_retries': self.confirm_retries,
            'last_confirmed_offset': self.last_confirmed_offset,
            'next_sequence_id': self.next_sequence_id,
            'elapsed_seconds': round(time.time() - self.started_at, 3),
        }
