"""
Base queue source class
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BaseQueueSource(ABC):
    """Base class for queue transports feeding the relay"""

    def __init__(self, queue_config: dict):
        self.queue_config = queue_config
        self.queue_name = queue_config.get('queue')

    @abstractmethod
    def connect(self):
        """Connect to the transport and open the queue"""
        pass

    @abstractmethod
    def pending_count(self) -> int:
        """Number of messages currently visible on the queue"""
        pass

    @abstractmethod
    def receive(self) -> Optional[bytes]:
        """
        Receive the next message

        Returns:
            bytes: Message payload, or None if the queue emptied since the depth check
        """
        pass

    @abstractmethod
    def close(self):
        """Close the queue handle"""
        pass

    def disconnect(self):
        """Disconnect from the transport (no-op for sources without a separate connection)"""
        pass

    @property
    def is_open(self) -> bool:
        return False

    @property
    def is_connected(self) -> bool:
        return False

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.is_open:
            self.close()
        if self.is_connected:
            self.disconnect()
        return False
