"""
Ingestion channel factory

The streaming ingestion client is supplied by the deployment: the sink
configuration names a callable ('package.module:callable') that receives the
sink configuration and returns an open BaseIngestChannel.
"""

import importlib
import logging

from mq_relay.errors import ConfigurationError, SinkError
from .base_channel import BaseIngestChannel, InsertError, ValidationResult

logger = logging.getLogger(__name__)


def load_channel_factory(factory_path: str):
    """
    Resolve a 'package.module:callable' reference

    Raises:
        ConfigurationError: If the reference is malformed or cannot be imported
    """
    if not factory_path or ':' not in factory_path:
        raise ConfigurationError(
            f"'channel_factory' must look like 'package.module:callable', got {factory_path!r}"
        )

    module_name, attr_name = factory_path.split(':', 1)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Unable to import channel factory module '{module_name}'", cause=e) from e

    factory = getattr(module, attr_name, None)
    if not callable(factory):
        raise ConfigurationError(f"Channel factory '{factory_path}' is not callable")
    return factory


def open_channel(sink_config: dict) -> BaseIngestChannel:
    """
    Open the ingestion channel described by the sink configuration

    Args:
        sink_config: 'sink' section of the relay configuration

    Returns:
        Open ingestion channel
    """
    factory = load_channel_factory(sink_config.get('channel_factory'))

    logger.info(f"Opening ingestion channel '{sink_config.get('channel_name')}' on "
                f"{sink_config.get('database')}.{sink_config.get('schema')}.{sink_config.get('table')}")
    try:
        channel = factory(sink_config)
    except Exception as e:
        raise SinkError("Failed to open ingestion channel", cause=e) from e

    for method in ('submit', 'latest_committed_offset'):
        if not callable(getattr(channel, method, None)):
            raise ConfigurationError(
                f"Channel returned by '{sink_config.get('channel_factory')}' has no '{method}' method"
            )
    return channel


__all__ = ['open_channel', 'load_channel_factory', 'BaseIngestChannel', 'InsertError', 'ValidationResult']
