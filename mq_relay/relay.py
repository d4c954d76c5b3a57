"""
MQ to sink relay wiring
Builds the drain/confirm loop from configuration and runs it under ordered shutdown
"""

import sys
import signal
import logging
import argparse
from typing import Optional

from mq_relay.batch import BatchContext, BatchDrainer
from mq_relay.clock import SystemClock
from mq_relay.config_loader import DEFAULT_CONFIG_FILE, get_relay_config, log_debug_options
from mq_relay.confirmer import CommitConfirmer, RetryPolicy
from mq_relay.errors import ConfigurationError, RelayError, SinkError
from mq_relay.monitoring import MetricsCollector, StructuredLogger
from mq_relay.scheduler import BatchCycleScheduler, RelayOutcome, exit_for_error
from mq_relay.shutdown import RelayShutdown, report_failure
from mq_relay.sinks import open_channel
from mq_relay.sources import get_queue_source
from mq_relay.status_tracker import RelayStatus

logger = logging.getLogger(__name__)

JOB_NAME = 'mq_relay'
EXIT_INTERRUPTED = 130

# Loggers of the sink client library, silenced unless debugging
SINK_CLIENT_LOGGERS = ('snowflake',)


def retry_policy_from_config(relay_config: dict) -> RetryPolicy:
    return RetryPolicy(
        max_retries=relay_config['confirm_max_retries'],
        interval_seconds=float(relay_config['confirm_poll_seconds']),
        backoff_multiplier=float(relay_config['confirm_backoff_multiplier']),
    )


def starting_context(channel, relay_config: dict) -> BatchContext:
    """
    Sequence state to start the run from

    Sequence ids are not persisted, so by default they restart at 1. With
    'resume_from_committed_offset' the sink's committed token seeds them
    instead, provided it is numeric.
    """
    if not relay_config.get('resume_from_committed_offset'):
        logger.warning("Sequence ids start at 1; rows confirmed by a previous run may be tagged again")
        return BatchContext()

    try:
        token = channel.latest_committed_offset()
    except Exception as e:
        raise SinkError("Failed to read committed offset to resume from", cause=e) from e
    if token is not None and str(token).isdigit():
        context = BatchContext(next_sequence_id=int(token) + 1, last_confirmed_offset=str(token))
        logger.info(f"Resuming after committed offset {token} (next sequence id {context.next_sequence_id})")
        return context

    logger.warning(f"Committed offset {token!r} is not a sequence id - starting at 1")
    return BatchContext()


def run_relay(config: dict, source=None, channel=None, clock=None,
              max_cycles: Optional[int] = None) -> RelayOutcome:
    """
    Relay messages from the configured queue into the configured sink

    Args:
        config: Configuration from get_relay_config()
        source: Queue source to use instead of the configured one
        channel: Ingestion channel to use instead of the configured one
        clock: Clock for idle and backoff waits
        max_cycles: Stop after this many cycles (runs forever when None)

    Returns:
        RelayOutcome: How the run ended
    """
    relay_config = config['relay']
    queue_config = config['queue']
    clock = clock or SystemClock()

    metrics = MetricsCollector(JOB_NAME, queue_config['queue'],
                               enable_cloudwatch=config['metrics']['cloudwatch'])
    structured_logger = StructuredLogger(JOB_NAME, queue_config['queue'])
    status = RelayStatus()

    shutdown = RelayShutdown(source, channel, status, structured_logger)

    with shutdown:
        try:
            if source is None:
                source = get_queue_source(queue_config)
                shutdown.source = source
            if channel is None:
                channel = open_channel(config['sink'])
                shutdown.channel = channel
            source.connect()

            context = starting_context(channel, relay_config)
            status.next_sequence_id = context.next_sequence_id

            drainer = BatchDrainer(source, channel, status=status, metrics=metrics,
                                   content_column=relay_config['content_column'],
                                   debug=relay_config['debug'])
            confirmer = CommitConfirmer(channel, retry_policy_from_config(relay_config),
                                        clock=clock, status=status, metrics=metrics)
            scheduler = BatchCycleScheduler(drainer, confirmer,
                                            idle_seconds=relay_config['batch_seconds'],
                                            clock=clock, status=status,
                                            structured_logger=structured_logger)

            structured_logger.log_relay_start({
                'queue_manager': queue_config.get('queue_manager'),
                'queue': queue_config['queue'],
                'batch_seconds': relay_config['batch_seconds'],
                'next_sequence_id': context.next_sequence_id,
            })
            outcome = scheduler.run(context, max_cycles=max_cycles)
        except RelayError as e:
            outcome = RelayOutcome(status=exit_for_error(e), context=BatchContext(), cycles=0, error=e)

        if outcome.error is not None:
            report_failure(outcome.error, structured_logger)

    return outcome


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"Received signal {signum}")


def configure_log_levels(debug: bool):
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        return
    for name in SINK_CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Relay IBM MQ messages into a streaming ingestion sink'
    )
    parser.add_argument(
        'config_file',
        nargs='?',
        help=f'Relay config file (default: {DEFAULT_CONFIG_FILE})'
    )
    parser.add_argument(
        '--config',
        dest='config_option',
        help='Relay config file (alternative to the positional argument)'
    )
    parser.add_argument(
        '--max-cycles',
        type=int,
        help='Stop after this many batch cycles (default: run until a fatal error)'
    )

    args = parser.parse_args(argv)
    config_file = args.config_option or args.config_file or DEFAULT_CONFIG_FILE

    try:
        config = get_relay_config(config_file)
        configure_log_levels(config['relay']['debug'])
        log_debug_options(config)
    except ConfigurationError as e:
        report_failure(e)
        return ConfigurationError.exit_code

    signal.signal(signal.SIGTERM, _raise_interrupt)

    try:
        outcome = run_relay(config, max_cycles=args.max_cycles)
    except KeyboardInterrupt:
        logger.info("Relay stopped by interrupt")
        return EXIT_INTERRUPTED

    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
