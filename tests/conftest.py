"""
Shared fixtures: in-memory queue source, ingestion channel and clock

No infrastructure required - the relay loop runs entirely against fakes.
"""

from collections import deque

import pytest

from mq_relay.clock import ManualClock
from mq_relay.sinks.base_channel import BaseIngestChannel, InsertError, ValidationResult
from mq_relay.sources.base_source import BaseQueueSource


class FakeQueueSource(BaseQueueSource):
    """Queue source serving a fixed list of payloads"""

    def __init__(self, messages=(), events=None, receive_error=None, fail_at=0):
        super().__init__({'queue': 'TEST.QUEUE', 'queue_manager': 'QMTEST'})
        self.messages = deque(messages)
        self.events = events if events is not None else []
        self.receive_error = receive_error
        self.fail_at = fail_at
        self.received = 0
        self._open = False
        self._connected = False

    def connect(self):
        self._connected = True
        self._open = True
        self.events.append('connect')

    def pending_count(self):
        return len(self.messages)

    def receive(self):
        if self.receive_error is not None and self.received == self.fail_at:
            raise self.receive_error
        self.received += 1
        return self.messages.popleft() if self.messages else None

    def close(self):
        self._open = False
        self.events.append('close_queue')

    def disconnect(self):
        self._connected = False
        self.events.append('disconnect')

    @property
    def is_open(self):
        return self._open

    @property
    def is_connected(self):
        return self._connected


class FakeChannel(BaseIngestChannel):
    """
    Ingestion channel recording submissions

    By default every submitted row commits immediately, so the latest committed
    offset is the last submitted token. Pass offsets to script the tokens the
    sink reports instead (the last one repeats), and reject to fail validation
    for specific tokens.
    """

    def __init__(self, offsets=None, reject=None, events=None):
        self.submitted = []
        self.polls = 0
        self.offsets = list(offsets) if offsets is not None else None
        self.reject = reject or {}
        self.events = events if events is not None else []
        self.closed = False

    def submit(self, row, offset_token):
        if offset_token in self.reject:
            return ValidationResult(errors=[InsertError(self.reject[offset_token], row_index=0)])
        self.submitted.append((row, offset_token))
        return ValidationResult()

    def latest_committed_offset(self):
        self.events.append('poll')
        self.polls += 1
        if self.offsets is None:
            return self.submitted[-1][1] if self.submitted else None
        index = min(self.polls - 1, len(self.offsets) - 1)
        return self.offsets[index]

    def close(self):
        self.closed = True
        self.events.append('close_channel')

    @property
    def tokens(self):
        return [token for _, token in self.submitted]


def make_fake_channel(sink_config):
    """Channel factory resolvable as 'conftest:make_fake_channel'"""
    channel = FakeChannel()
    channel.sink_config = sink_config
    return channel


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def events():
    return []


@pytest.fixture
def relay_config():
    """Configuration as returned by get_relay_config()"""
    return {
        'relay': {
            'batch_seconds': 30,
            'debug': False,
            'confirm_max_retries': 100,
            'confirm_poll_seconds': 1,
            'confirm_backoff_multiplier': 1.0,
            'content_column': 'RECORD_CONTENT',
            'resume_from_committed_offset': False,
        },
        'queue': {
            'type': 'ibm_mq',
            'queue_manager': 'QMTEST',
            'queue': 'TEST.QUEUE',
        },
        'sink': {
            'channel_factory': 'conftest:make_fake_channel',
            'channel_name': 'TEST_CHANNEL',
            'database': 'DB',
            'schema': 'PUBLIC',
            'table': 'MESSAGES',
            'scheme': 'https',
            'port': 443,
        },
        'metrics': {
            'cloudwatch': False,
        },
    }
