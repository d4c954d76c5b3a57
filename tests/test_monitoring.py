"""
Unit tests for metrics, structured events and correlation ids
"""

import json
import logging
import sys
from unittest.mock import MagicMock

from mq_relay.correlation import (
    clear_correlation_id,
    correlation_id,
    get_correlation_id,
    with_correlation_id,
)
from mq_relay.monitoring import CLOUDWATCH_NAMESPACE, MetricsCollector, StructuredLogger


def events_from(caplog):
    return [
        json.loads(record.getMessage()[len('EVENT: '):])
        for record in caplog.records
        if record.getMessage().startswith('EVENT: ')
    ]


class TestMetricsCollector:

    def test_summary_aggregates_by_name(self):
        metrics = MetricsCollector('mq_relay', 'ORDERS.IN')
        metrics.emit_counter('rows_submitted', 3)
        metrics.emit_counter('rows_submitted', 2)
        metrics.emit_gauge('queue_depth', 7)

        summary = metrics.get_metrics_summary()

        assert summary['total_metrics'] == 3
        assert summary['cloudwatch_enabled'] is False
        assert summary['metrics']['rows_submitted'] == {'count': 2, 'sum': 5.0, 'min': 2.0, 'max': 3.0}
        assert summary['metrics']['queue_depth']['max'] == 7.0

    def test_track_duration_emits_seconds(self):
        metrics = MetricsCollector('mq_relay', 'ORDERS.IN')

        with metrics.track_duration('drain'):
            pass

        metric = metrics.metrics_buffer[-1]
        assert metric['metric_name'] == 'drain_duration'
        assert metric['unit'] == 'Seconds'
        assert metric['dimensions'] == {'Relay': 'mq_relay', 'Queue': 'ORDERS.IN'}

    def test_cloudwatch_publishing(self, monkeypatch):
        boto3 = MagicMock()
        monkeypatch.setitem(sys.modules, 'boto3', boto3)

        metrics = MetricsCollector('mq_relay', 'ORDERS.IN', enable_cloudwatch=True)
        metrics.emit_counter('confirmations')

        boto3.client.assert_called_once_with('cloudwatch')
        call = boto3.client.return_value.put_metric_data.call_args
        assert call.kwargs['Namespace'] == CLOUDWATCH_NAMESPACE
        assert call.kwargs['MetricData'][0]['MetricName'] == 'confirmations'

    def test_cloudwatch_failure_does_not_raise(self, monkeypatch, caplog):
        boto3 = MagicMock()
        boto3.client.return_value.put_metric_data.side_effect = RuntimeError('throttled')
        monkeypatch.setitem(sys.modules, 'boto3', boto3)

        metrics = MetricsCollector('mq_relay', 'ORDERS.IN', enable_cloudwatch=True)
        metrics.emit_counter('confirmations')

        assert 'Failed to send metric to CloudWatch' in caplog.text
        assert len(metrics.metrics_buffer) == 1


class TestStructuredLogger:

    def test_event_carries_correlation_id(self, caplog):
        structured = StructuredLogger('mq_relay', 'ORDERS.IN')

        with caplog.at_level(logging.INFO, logger='mq_relay.monitoring'):
            with with_correlation_id('cycle-1'):
                structured.log_cycle_complete(rows_submitted=3, next_sequence_id=4,
                                              confirmed_offset='3', duration_seconds=30.0)

        event = events_from(caplog)[0]
        assert event['event_type'] == 'cycle_complete'
        assert event['correlation_id'] == 'cycle-1'
        assert event['details']['confirmed_offset'] == '3'
        assert event['source_name'] == 'ORDERS.IN'

    def test_event_without_correlation_id(self, caplog):
        structured = StructuredLogger('mq_relay', 'ORDERS.IN')

        with caplog.at_level(logging.INFO, logger='mq_relay.monitoring'):
            structured.log_relay_start({'queue': 'ORDERS.IN'})

        assert 'correlation_id' not in events_from(caplog)[0]

    def test_failure_event_logged_as_error(self, caplog):
        structured = StructuredLogger('mq_relay', 'ORDERS.IN')

        structured.log_relay_failure('transport', 'queue unavailable', {'reason_code': 2009})

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert events_from(caplog)[-1]['details'] == {
            'error_kind': 'transport',
            'error': 'queue unavailable',
            'reason_code': 2009,
        }


class TestCorrelation:

    def test_scoped_id_is_restored(self):
        clear_correlation_id()

        with with_correlation_id() as outer:
            with with_correlation_id('inner') as inner:
                assert correlation_id.get() == inner == 'inner'
            assert correlation_id.get() == outer

        assert correlation_id.get() is None

    def test_get_generates_when_unset(self):
        clear_correlation_id()

        cid = get_correlation_id()

        assert cid
        assert get_correlation_id() == cid
        clear_correlation_id()
