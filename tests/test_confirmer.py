"""
Unit tests for commit confirmation and its retry policy
"""

import pytest

from conftest import FakeChannel
from mq_relay.batch import BatchContext, DrainResult
from mq_relay.confirmer import CommitConfirmer, RetryPolicy
from mq_relay.errors import ConfirmationTimeoutError, SinkError
from mq_relay.status_tracker import RelayStatus


def drained(last_sequence_id, rows=1):
    return DrainResult(context=BatchContext(next_sequence_id=last_sequence_id + 1), rows_submitted=rows)


class TestRetryPolicy:

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 100
        assert policy.interval_seconds == 1.0
        assert policy.delay_for(0) == 1.0
        assert policy.delay_for(99) == 1.0

    def test_backoff_is_capped(self):
        policy = RetryPolicy(max_retries=10, interval_seconds=1.0, backoff_multiplier=2.0,
                             max_interval_seconds=5.0)
        assert [policy.delay_for(i) for i in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_max_total_wait_for_fixed_interval(self):
        assert RetryPolicy(max_retries=100, interval_seconds=1.0).max_total_wait() == 100.0

    @pytest.mark.parametrize('kwargs', [
        {'max_retries': -1},
        {'interval_seconds': -0.5},
        {'backoff_multiplier': 0.5},
    ])
    def test_invalid_policy_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestCommitConfirmer:

    def test_confirms_on_first_poll_without_sleeping(self, clock):
        channel = FakeChannel(offsets=['3'])

        token = CommitConfirmer(channel, clock=clock).confirm(drained(3))

        assert token == '3'
        assert channel.polls == 1
        assert clock.sleeps == []

    def test_retries_until_token_matches(self, clock):
        channel = FakeChannel(offsets=[None, '1', '2', '3'])
        status = RelayStatus()

        token = CommitConfirmer(channel, RetryPolicy(interval_seconds=0.5), clock=clock,
                                status=status).confirm(drained(3))

        assert token == '3'
        assert channel.polls == 4
        assert clock.sleeps == [0.5, 0.5, 0.5]
        assert status.confirm_retries == 3

    def test_token_compared_as_exact_string(self, clock):
        channel = FakeChannel(offsets=['03'])

        with pytest.raises(ConfirmationTimeoutError):
            CommitConfirmer(channel, RetryPolicy(max_retries=3), clock=clock).confirm(drained(3))

    def test_token_beyond_expected_does_not_confirm(self, clock):
        channel = FakeChannel(offsets=['4'])

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            CommitConfirmer(channel, RetryPolicy(max_retries=2), clock=clock).confirm(drained(3))

        assert exc_info.value.last_seen == '4'

    def test_stuck_token_times_out_after_max_retries(self, clock):
        channel = FakeChannel(offsets=['0'])

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            CommitConfirmer(channel, RetryPolicy(max_retries=100, interval_seconds=1.0),
                            clock=clock).confirm(drained(1))

        error = exc_info.value
        assert error.expected == '1'
        assert error.last_seen == '0'
        assert error.retries == 100
        assert error.sequence_id == 1
        assert error.exit_code == 1
        assert channel.polls == 101
        assert clock.total_slept == 100.0

    def test_total_wait_is_bounded_by_policy(self, clock):
        policy = RetryPolicy(max_retries=7, interval_seconds=2.0)

        with pytest.raises(ConfirmationTimeoutError):
            CommitConfirmer(FakeChannel(offsets=[None]), policy, clock=clock).confirm(drained(5))

        assert clock.total_slept <= policy.max_retries * policy.interval_seconds

    def test_zero_retries_fails_after_single_poll(self, clock):
        channel = FakeChannel(offsets=[None])

        with pytest.raises(ConfirmationTimeoutError):
            CommitConfirmer(channel, RetryPolicy(max_retries=0), clock=clock).confirm(drained(1))

        assert channel.polls == 1
        assert clock.sleeps == []

    def test_match_before_budget_runs_out_succeeds(self, clock):
        channel = FakeChannel(offsets=['0', '0', '2'])

        token = CommitConfirmer(channel, RetryPolicy(max_retries=3), clock=clock).confirm(drained(2))

        assert token == '2'
        assert channel.polls == 3

    def test_poll_exhausting_budget_is_fatal_even_on_match(self, clock):
        channel = FakeChannel(offsets=['0', '0', '2'])

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            CommitConfirmer(channel, RetryPolicy(max_retries=2), clock=clock).confirm(drained(2))

        assert exc_info.value.retries == 2
        assert channel.polls == 3

    def test_sink_stuck_for_hundred_polls_then_matching_still_times_out(self, clock):
        channel = FakeChannel(offsets=['0'] * 100 + ['1'])

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            CommitConfirmer(channel, RetryPolicy(max_retries=100), clock=clock).confirm(drained(1))

        assert exc_info.value.retries == 100
        assert channel.polls == 101
        assert clock.total_slept == 100.0

    def test_numeric_token_is_compared_as_string(self, clock):
        channel = FakeChannel(offsets=[3])

        assert CommitConfirmer(channel, clock=clock).confirm(drained(3)) == '3'

    def test_sink_failure_while_polling(self, clock):
        class BrokenChannel(FakeChannel):
            def latest_committed_offset(self):
                raise TimeoutError('sink unreachable')

        with pytest.raises(SinkError):
            CommitConfirmer(BrokenChannel(), clock=clock).confirm(drained(1))
