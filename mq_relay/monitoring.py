"""
Relay metrics and structured events

Metrics are kept in memory for the final report and, when enabled, published
to CloudWatch. Events are JSON lines prefixed with 'EVENT:' so log shippers
can pick them out of the regular log stream.
"""

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mq_relay.correlation import correlation_id

logger = logging.getLogger(__name__)

CLOUDWATCH_NAMESPACE = 'MQRelay/Pipeline'

_EVENT_LEVELS = {
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
}


@dataclass(frozen=True)
class MetricPoint:
    name: str
    value: float
    unit: str
    dimensions: Dict[str, str]
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_log_record(self) -> Dict[str, Any]:
        return {
            'timestamp': self.recorded_at.isoformat(),
            'metric_name': self.name,
            'value': self.value,
            'unit': self.unit,
            'dimensions': self.dimensions,
        }

    def as_cloudwatch_datum(self) -> Dict[str, Any]:
        return {
            'MetricName': self.name,
            'Value': self.value,
            'Unit': self.unit,
            'Timestamp': self.recorded_at,
            'Dimensions': [{'Name': name, 'Value': value} for name, value in self.dimensions.items()],
        }


@dataclass
class MetricStats:
    count: int = 0
    sum: float = 0.0
    min: float = float('inf')
    max: float = float('-inf')

    def add(self, value: float):
        self.count += 1
        self.sum += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)


def _cloudwatch_client():
    """CloudWatch client, or None when boto3 or AWS credentials are unavailable"""
    try:
        import boto3
    except ImportError:
        logger.warning("boto3 not installed, CloudWatch metrics disabled (pip install mq-relay[cloudwatch])")
        return None
    try:
        client = boto3.client('cloudwatch')
    except Exception as e:
        logger.warning(f"CloudWatch client unavailable ({e}), metrics are logged only")
        return None
    logger.info(f"Publishing metrics to CloudWatch namespace {CLOUDWATCH_NAMESPACE}")
    return client


class MetricsCollector:
    """
    Collects relay metrics for one run

    Every point is tagged with the relay job and the queue it reads from.
    Publishing failures are logged and never interrupt the relay.
    """

    def __init__(self, job_name: str, source_name: str, enable_cloudwatch: bool = False):
        """
        Args:
            job_name: Relay job name, used as the 'Relay' dimension
            source_name: Queue name, used as the 'Queue' dimension
            enable_cloudwatch: Also publish every point to CloudWatch
        """
        self.job_name = job_name
        self.source_name = source_name
        self.base_dimensions = {'Relay': job_name, 'Queue': source_name}
        self.points: List[MetricPoint] = []
        self.cloudwatch_client = _cloudwatch_client() if enable_cloudwatch else None

    @property
    def metrics_buffer(self) -> List[Dict[str, Any]]:
        return [point.as_log_record() for point in self.points]

    def emit_metric(self, metric_name: str, value: float, unit: str = 'Count',
                    dimensions: Optional[Dict[str, str]] = None):
        point = MetricPoint(metric_name, float(value), unit, {**self.base_dimensions, **(dimensions or {})})
        self.points.append(point)
        logger.debug(f"METRIC: {json.dumps(point.as_log_record())}")

        if self.cloudwatch_client is None:
            return
        try:
            self.cloudwatch_client.put_metric_data(
                Namespace=CLOUDWATCH_NAMESPACE,
                MetricData=[point.as_cloudwatch_datum()],
            )
        except Exception as e:
            logger.warning(f"Failed to send metric to CloudWatch: {e}")

    def emit_counter(self, metric_name: str, count: int = 1, dimensions: Optional[Dict[str, str]] = None):
        self.emit_metric(metric_name, count, unit='Count', dimensions=dimensions)

    def emit_gauge(self, metric_name: str, value: float, unit: str = 'None',
                   dimensions: Optional[Dict[str, str]] = None):
        self.emit_metric(metric_name, value, unit=unit, dimensions=dimensions)

    def emit_duration(self, metric_name: str, duration_seconds: float,
                      dimensions: Optional[Dict[str, str]] = None):
        self.emit_metric(metric_name, duration_seconds, unit='Seconds', dimensions=dimensions)

    @contextmanager
    def track_duration(self, operation_name: str, dimensions: Optional[Dict[str, str]] = None):
        """
        Time a block and emit '<operation_name>_duration' in seconds

        Usage:
            with metrics.track_duration('drain'):
                drainer.drain(context)
        """
        started = time.monotonic()
        try:
            yield
        finally:
            self.emit_duration(f"{operation_name}_duration", time.monotonic() - started, dimensions)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Aggregate collected points by metric name

        Returns:
            dict: Point count, CloudWatch state and count/sum/min/max per metric
        """
        stats: Dict[str, MetricStats] = {}
        for point in self.points:
            stats.setdefault(point.name, MetricStats()).add(point.value)

        return {
            'total_metrics': len(self.points),
            'job_name': self.job_name,
            'source_name': self.source_name,
            'cloudwatch_enabled': self.cloudwatch_client is not None,
            'metrics': {name: vars(stat) for name, stat in stats.items()},
        }


class StructuredLogger:
    """JSON event lines for relay lifecycle milestones"""

    def __init__(self, job_name: str, source_name: str):
        self.job_name = job_name
        self.source_name = source_name
        self.logger = logging.getLogger(__name__)

    def log_event(self, event_type: str, details: Dict[str, Any], level: str = 'INFO'):
        """
        Log one event, tagged with the current cycle's correlation id if any

        Args:
            event_type: e.g. 'cycle_complete', 'relay_stop'
            details: Event payload
            level: 'INFO', 'WARNING' or 'ERROR'
        """
        event = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'job_name': self.job_name,
            'source_name': self.source_name,
            'event_type': event_type,
            'details': details,
        }
        cid = correlation_id.get()
        if cid:
            event['correlation_id'] = cid

        self.logger.log(_EVENT_LEVELS.get(level, logging.INFO), f"EVENT: {json.dumps(event, default=str)}")

    def log_relay_start(self, details: Optional[Dict] = None):
        self.log_event('relay_start', details or {})

    def log_cycle_complete(self, rows_submitted: int, next_sequence_id: int,
                           confirmed_offset: Optional[str], duration_seconds: float):
        self.log_event('cycle_complete', {
            'rows_submitted': rows_submitted,
            'next_sequence_id': next_sequence_id,
            'confirmed_offset': confirmed_offset,
            'duration_seconds': round(duration_seconds, 3),
        })

    def log_relay_stop(self, summary: Dict[str, Any]):
        self.log_event('relay_stop', summary)

    def log_relay_failure(self, error_kind: str, error: str, details: Optional[Dict] = None):
        payload = {'error_kind': error_kind, 'error': error}
        payload.update(details or {})
        self.log_event('relay_failure', payload, level='ERROR')
