"""
Queue source factory
"""

from .base_source import BaseQueueSource

SUPPORTED_QUEUE_TYPES = ('ibm_mq',)


def get_queue_source(queue_config: dict) -> BaseQueueSource:
    """
    Factory function to get the queue source for the configured transport

    Transport modules are imported on demand so their client libraries are
    only required when selected.

    Args:
        queue_config: 'queue' section of the relay configuration

    Returns:
        BaseQueueSource subclass instance (not yet connected)
    """
    source_type = queue_config.get('type', 'ibm_mq')

    if source_type == 'ibm_mq':
        from .ibm_mq_source import IbmMqQueueSource
        return IbmMqQueueSource(queue_config)

    raise ValueError(f"Unsupported queue type: {source_type}. Supported: {list(SUPPORTED_QUEUE_TYPES)}")


__all__ = ['get_queue_source', 'BaseQueueSource', 'SUPPORTED_QUEUE_TYPES']
