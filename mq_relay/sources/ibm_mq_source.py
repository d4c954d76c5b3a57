"""
IBM MQ queue source built on pymqi
"""

import logging
from typing import Optional

import pymqi

from mq_relay.errors import TransportError
from .base_source import BaseQueueSource

logger = logging.getLogger(__name__)

OPEN_OPTIONS = pymqi.CMQC.MQOO_INPUT_AS_Q_DEF | pymqi.CMQC.MQOO_OUTPUT | pymqi.CMQC.MQOO_INQUIRE


def _transport_error(action: str, error: pymqi.MQMIError) -> TransportError:
    return TransportError(
        f"IBM MQ error while {action}",
        completion_code=error.comp,
        reason_code=error.reason,
        cause=error,
    )


class IbmMqQueueSource(BaseQueueSource):
    """
    Reads messages from an IBM MQ queue

    Connects with local bindings by default, or as a client when both
    'channel' and 'conn_info' are configured.
    """

    def __init__(self, queue_config: dict, qmgr=None, queue=None):
        super().__init__(queue_config)
        self.queue_manager_name = queue_config.get('queue_manager')
        self._qmgr = qmgr
        self._queue = queue

    def connect(self):
        channel = self.queue_config.get('channel')
        conn_info = self.queue_config.get('conn_info')

        try:
            if self._qmgr is None:
                logger.debug(f"Connecting to queue manager: {self.queue_manager_name}")
                if channel and conn_info:
                    self._qmgr = pymqi.connect(
                        self.queue_manager_name, channel, conn_info,
                        self.queue_config.get('user'), self.queue_config.get('password')
                    )
                else:
                    self._qmgr = pymqi.connect(self.queue_manager_name)

            if self._queue is None:
                logger.debug(f"Accessing queue: {self.queue_name}")
                self._queue = pymqi.Queue(self._qmgr, self.queue_name, OPEN_OPTIONS)
        except pymqi.MQMIError as e:
            raise _transport_error(f"opening queue {self.queue_name} on {self.queue_manager_name}", e) from e

        logger.info(f"Connected to Queue: {self.queue_name}")

    def pending_count(self) -> int:
        try:
            return int(self._queue.inquire(pymqi.CMQC.MQIA_CURRENT_Q_DEPTH))
        except pymqi.MQMIError as e:
            raise _transport_error(f"inquiring depth of {self.queue_name}", e) from e

    def receive(self) -> Optional[bytes]:
        try:
            return self._queue.get()
        except pymqi.MQMIError as e:
            if e.comp == pymqi.CMQC.MQCC_FAILED and e.reason == pymqi.CMQC.MQRC_NO_MSG_AVAILABLE:
                return None
            raise _transport_error(f"reading from {self.queue_name}", e) from e

    def close(self):
        queue, self._queue = self._queue, None
        if queue is None:
            return
        try:
            queue.close()
        except pymqi.MQMIError as e:
            raise _transport_error(f"closing {self.queue_name}", e) from e

    def disconnect(self):
        qmgr, self._qmgr = self._qmgr, None
        if qmgr is None:
            return
        logger.debug(f"Disconnecting from queue manager: {self.queue_manager_name}")
        try:
            qmgr.disconnect()
        except pymqi.MQMIError as e:
            raise _transport_error(f"disconnecting from {self.queue_manager_name}", e) from e

    @property
    def is_open(self) -> bool:
        return self._queue is not None

    @property
    def is_connected(self) -> bool:
        return self._qmgr is not None
