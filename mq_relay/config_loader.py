import yaml
import os
import re
import copy
import logging
from typing import Dict, Any

from mq_relay.errors import ConfigurationError
from mq_relay.secrets_utils import read_private_key, resolve_secret, validate_private_key
from mq_relay.sources import SUPPORTED_QUEUE_TYPES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = './mq_relay.yaml'

DEFAULTS = {
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
        'queue_manager': 'QM1',
        'queue': 'SYSTEM.DEFAULT.LOCAL.QUEUE',
    },
    'sink': {},
    'metrics': {
        'cloudwatch': False,
    },
}

# Options announced when absent, as operators commonly forget them
REPORTED_DEFAULTS = {
    'relay': ['batch_seconds'],
    'queue': ['queue_manager', 'queue'],
}

# The sink client only speaks HTTPS on the standard port
FORCED_SINK_OPTIONS = {
    'scheme': 'https',
    'port': 443,
}

SECRET_KEYS = {'password', 'private_key', 'private_key_passphrase', 'token'}


def _substitute_env_vars(config: Any) -> Any:
    """
    Recursively substitute environment variables in config
    Supports ${ENV_VAR_NAME} or ${ENV_VAR_NAME:default_value} syntax

    Keys named like secrets are left untouched; they are resolved by the
    secrets manager so their values never pass through here.
    """
    if isinstance(config, dict):
        return {
            key: value if key in SECRET_KEYS else _substitute_env_vars(value)
            for key, value in config.items()
        }
    elif isinstance(config, list):
        return [_substitute_env_vars(item) for item in config]
    elif isinstance(config, str):
        # Match ${VAR} or ${VAR:default}
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replace_env_var(match):
            var_name = match.group(1)
            default_value = match.group(2)

            value = os.environ.get(var_name)
            if value is None:
                if default_value is not None:
                    return default_value
                else:
                    raise ConfigurationError(
                        f"Environment variable '{var_name}' not found and no default provided. "
                        f"Set the variable or provide a default with ${{VAR:default}}"
                    )
            return value

        return re.sub(pattern, replace_env_var, config)
    else:
        return config


def load_config_raw(config_file: str) -> Dict[str, Any]:
    """Load YAML configuration file without environment variable substitution"""
    if not os.path.exists(config_file):
        raise ConfigurationError(f"Unable to find config file: {config_file}")
    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed config file: {config_file}", cause=e) from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(
            f"Config file {config_file} must contain a mapping, got {type(config).__name__}"
        )
    return config


def load_config(config_file: str) -> Dict[str, Any]:
    """Load YAML configuration file with environment variable substitution"""
    config = load_config_raw(config_file)
    return _substitute_env_vars(config)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _coerce_number(value: Any) -> Any:
    """Convert numeric strings produced by env substitution; leave anything else for validation"""
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return value


def _apply_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in missing sections and options, warning about the commonly forgotten ones"""
    merged = {}
    for section, defaults in DEFAULTS.items():
        values = config.get(section) or {}
        if not isinstance(values, dict):
            raise ConfigurationError(
                f"'{section}' must be a dictionary, got {type(values).__name__}"
            )

        for option in REPORTED_DEFAULTS.get(section, []):
            if option not in values:
                logger.warning(f"Option '{section}.{option}' missing from config, "
                               f"using default: {defaults[option]}")

        merged[section] = {**copy.deepcopy(defaults), **values}
    return merged


def _validate_relay_config(relay: Dict[str, Any]) -> None:
    """
    Validate the relay section

    Ensures:
    - batch_seconds is a non-negative number (idle wait between cycles)
    - confirm_max_retries is a non-negative integer
    - confirm_poll_seconds is a non-negative number
    - confirm_backoff_multiplier is a number >= 1
    - content_column is a non-empty string
    """
    batch_seconds = relay['batch_seconds']
    if isinstance(batch_seconds, bool) or not isinstance(batch_seconds, (int, float)) or batch_seconds < 0:
        raise ConfigurationError(f"'batch_seconds' must be a non-negative number, got {batch_seconds!r}")

    retries = relay['confirm_max_retries']
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise ConfigurationError(f"'confirm_max_retries' must be a non-negative integer, got {retries!r}")

    poll = relay['confirm_poll_seconds']
    if isinstance(poll, bool) or not isinstance(poll, (int, float)) or poll < 0:
        raise ConfigurationError(f"'confirm_poll_seconds' must be a non-negative number, got {poll!r}")

    multiplier = relay['confirm_backoff_multiplier']
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)) or multiplier < 1:
        raise ConfigurationError(
            f"'confirm_backoff_multiplier' must be a number >= 1, got {multiplier!r}"
        )

    column = relay['content_column']
    if not isinstance(column, str) or not column:
        raise ConfigurationError(f"'content_column' must be a non-empty string, got {column!r}")


def _validate_queue_config(queue: Dict[str, Any]) -> None:
    """
    Validate the queue section

    Ensures:
    - type names a supported transport
    - queue_manager and queue are non-empty strings
    - channel and conn_info are given together (client connection) or not at all
    """
    if queue.get('type') not in SUPPORTED_QUEUE_TYPES:
        raise ConfigurationError(
            f"Unsupported 'queue.type': {queue.get('type')!r}. Supported: {list(SUPPORTED_QUEUE_TYPES)}"
        )

    for option in ('queue_manager', 'queue'):
        value = queue.get(option)
        if not isinstance(value, str) or not value:
            raise ConfigurationError(f"'queue.{option}' must be a non-empty string, got {value!r}")

    if bool(queue.get('channel')) != bool(queue.get('conn_info')):
        raise ConfigurationError("'queue.channel' and 'queue.conn_info' must be set together")


def _validate_sink_config(sink: Dict[str, Any]) -> None:
    """
    Validate the sink section

    Ensures:
    - channel_factory is set
    - channel_name, database, schema and table are non-empty strings when present
    """
    if not sink.get('channel_factory'):
        raise ConfigurationError("'sink.channel_factory' is required (e.g. 'my_package.snowflake:open_channel')")

    for option in ('channel_name', 'database', 'schema', 'table'):
        if option in sink and (not isinstance(sink[option], str) or not sink[option]):
            raise ConfigurationError(f"'sink.{option}' must be a non-empty string, got {sink[option]!r}")


def mask_secrets(config: Any) -> Any:
    """Return a copy of config with secret values masked, for logging"""
    if isinstance(config, dict):
        return {
            key: '****' if key in SECRET_KEYS and value else mask_secrets(value)
            for key, value in config.items()
        }
    if isinstance(config, list):
        return [mask_secrets(item) for item in config]
    return config


def get_relay_config(config_file: str = DEFAULT_CONFIG_FILE) -> Dict[str, Any]:
    """
    Load, default and validate the relay configuration

    Secrets are resolved, the private key file (if configured) is loaded into
    'sink.private_key', and the forced sink connection options are applied.

    Args:
        config_file: Path to the YAML config file

    Returns:
        dict: Sections 'relay', 'queue', 'sink' and 'metrics'

    Raises:
        ConfigurationError: Missing file, invalid option or unusable key material
    """
    config = _apply_defaults(load_config(config_file))

    relay = config['relay']
    relay['debug'] = _coerce_bool(relay['debug'])
    relay['resume_from_committed_offset'] = _coerce_bool(relay['resume_from_committed_offset'])
    for option in ('batch_seconds', 'confirm_max_retries', 'confirm_poll_seconds', 'confirm_backoff_multiplier'):
        relay[option] = _coerce_number(relay[option])
    config['metrics']['cloudwatch'] = _coerce_bool(config['metrics']['cloudwatch'])

    _validate_relay_config(relay)
    _validate_queue_config(config['queue'])
    _validate_sink_config(config['sink'])

    for section in ('queue', 'sink'):
        for key in SECRET_KEYS & set(config[section]):
            if config[section][key]:
                config[section][key] = resolve_secret(str(config[section][key]))

    sink = config['sink']
    key_file = sink.get('private_key_file')
    if key_file:
        sink['private_key'] = read_private_key(key_file)
    sink.update(FORCED_SINK_OPTIONS)

    return config


def log_debug_options(config: Dict[str, Any]) -> None:
    """
    Debug-mode startup checks, run once the log level reflects relay.debug

    Parses the private key to confirm it is usable, then logs every option
    with secrets masked.

    Raises:
        ConfigurationError: The private key is not a valid RSA key
    """
    if not config['relay']['debug']:
        return

    private_key = config['sink'].get('private_key')
    if private_key:
        validate_private_key(private_key)
        logger.debug("Provided private key is valid")

    for section, values in mask_secrets(config).items():
        for key, value in values.items():
            logger.debug(f"  * DEBUG: {section}.{key}: {value}")
