"""
Tests for the paging state machine and backoff
"""

import pytest

from tokenledger.ingest.pager import BackoffPolicy, Pager, PagerStatus, call_with_backoff
from tokenledger.providers.base import Page
from tokenledger.utils.exceptions import FatalProviderError, TransientProviderError

from conftest import ScriptedProvider, make_page


def drain(pager):
    return [page for page in pager.pages()]


def transient():
    return TransientProviderError("scripted", 429, "slow down")


class TestBackoffPolicy:
    def test_exponential(self):
        policy = BackoffPolicy(max_attempts=5, base_delay=1.0, max_delay=30.0)
        assert [policy.delay(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        policy = BackoffPolicy(max_attempts=10, base_delay=1.0, max_delay=30.0)
        assert policy.delay(6) == 30.0
        assert policy.delay(9) == 30.0


class TestCallWithBackoff:
    def test_retries_transient_then_succeeds(self, fake_sleep):
        outcomes = [transient(), transient(), "ok"]

        def fn():
            item = outcomes.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        assert call_with_backoff(fn, BackoffPolicy(max_attempts=3), sleep=fake_sleep) == "ok"
        assert fake_sleep.calls == [1.0, 2.0]

    def test_gives_up_at_ceiling(self, fake_sleep):
        calls = []

        def fn():
            calls.append(1)
            raise transient()

        with pytest.raises(TransientProviderError):
            call_with_backoff(fn, BackoffPolicy(max_attempts=3), sleep=fake_sleep)
        assert len(calls) == 3
        assert fake_sleep.calls == [1.0, 2.0]

    def test_fatal_not_retried(self, fake_sleep):
        calls = []

        def fn():
            calls.append(1)
            raise FatalProviderError("scripted", 400, "bad request")

        with pytest.raises(FatalProviderError):
            call_with_backoff(fn, BackoffPolicy(max_attempts=5), sleep=fake_sleep)
        assert len(calls) == 1
        assert fake_sleep.calls == []


class TestPager:
    def test_short_page_ends_run(self, fake_sleep):
        provider = ScriptedProvider([make_page(1000, "c1"), make_page(1000, "c2"), make_page(400)])
        pager = Pager(provider, sleep=fake_sleep)

        pages = drain(pager)

        assert [len(p.records) for p in pages] == [1000, 1000, 400]
        assert pager.rows_fetched == 2400
        assert pager.status is PagerStatus.STOPPED_EMPTY
        assert provider.fetches == 3
        assert provider.cursors == [None, "c1", "c2"]

    def test_page_delay_between_pages_only(self, fake_sleep):
        provider = ScriptedProvider([make_page(1000, "c1"), make_page(1000, "c2"), make_page(10)])
        drain(Pager(provider, page_delay=0.25, sleep=fake_sleep))
        assert fake_sleep.calls == [0.25, 0.25]

    def test_safety_cap_stops_without_extra_fetch(self, fake_sleep):
        provider = ScriptedProvider([], repeat=make_page(1000, "more"))
        pager = Pager(provider, safety_cap=20000, sleep=fake_sleep)

        drain(pager)

        assert pager.rows_fetched == 20000
        assert provider.fetches == 20
        assert pager.status is PagerStatus.STOPPED_CAP

    def test_safety_cap_truncates_last_page(self, fake_sleep):
        provider = ScriptedProvider([], repeat=make_page(1000, "more"))
        pager = Pager(provider, safety_cap=2500, sleep=fake_sleep)

        pages = drain(pager)

        assert [len(p.records) for p in pages] == [1000, 1000, 500]
        assert pager.rows_fetched == 2500
        assert pager.status is PagerStatus.STOPPED_CAP

    def test_soft_limit_on_first_page(self, fake_sleep):
        provider = ScriptedProvider([Page(done=True, soft_limited=True)])
        pager = Pager(provider, sleep=fake_sleep)

        pages = drain(pager)

        assert len(pages) == 1 and pages[0].records == []
        assert pager.rows_fetched == 0
        assert pager.status is PagerStatus.STOPPED_SOFT_LIMIT

    def test_soft_limit_after_data(self, fake_sleep):
        provider = ScriptedProvider([make_page(1000, "c1"), Page(done=True, soft_limited=True)])
        pager = Pager(provider, sleep=fake_sleep)

        drain(pager)

        assert pager.rows_fetched == 1000
        assert pager.status is PagerStatus.STOPPED_SOFT_LIMIT

    def test_transient_retried_on_same_cursor(self, fake_sleep):
        provider = ScriptedProvider([make_page(1000, "c1"), transient(), transient(), make_page(3)])
        pager = Pager(provider, policy=BackoffPolicy(max_attempts=3), page_delay=0.25, sleep=fake_sleep)

        drain(pager)

        assert provider.cursors == [None, "c1", "c1", "c1"]
        assert fake_sleep.calls == [0.25, 1.0, 2.0]
        assert pager.status is PagerStatus.STOPPED_EMPTY
        assert pager.rows_fetched == 1003

    def test_retry_ceiling_fails_run(self, fake_sleep):
        provider = ScriptedProvider([make_page(1000, "c1"), transient(), transient()])
        pager = Pager(provider, policy=BackoffPolicy(max_attempts=2), sleep=fake_sleep)

        with pytest.raises(TransientProviderError):
            drain(pager)

        assert pager.status is PagerStatus.FAILED
        assert isinstance(pager.error, TransientProviderError)
        assert pager.rows_fetched == 1000

    def test_fatal_fails_immediately(self, fake_sleep):
        provider = ScriptedProvider([FatalProviderError("scripted", 403, "forbidden")])
        pager = Pager(provider, sleep=fake_sleep)

        with pytest.raises(FatalProviderError):
            drain(pager)

        assert provider.fetches == 1
        assert pager.status is PagerStatus.FAILED
        assert fake_sleep.calls == []

    def test_deadline_stops_as_cap(self, fake_sleep):
        ticks = iter(range(0, 1000, 10))
        provider = ScriptedProvider([], repeat=make_page(1000, "more"))
        pager = Pager(provider, max_runtime=15, sleep=fake_sleep, clock=lambda: next(ticks))

        drain(pager)

        assert provider.fetches == 2
        assert pager.status is PagerStatus.STOPPED_CAP

    def test_missing_cursor_stops(self, fake_sleep):
        provider = ScriptedProvider([Page(records=make_page(1000).records, next_cursor=None, done=False)])
        pager = Pager(provider, sleep=fake_sleep)

        drain(pager)

        assert provider.fetches == 1
        assert pager.status is PagerStatus.STOPPED_EMPTY

    def test_from_config(self, ingest, fake_sleep):
        pager = Pager.from_config(ScriptedProvider([]), ingest, sleep=fake_sleep)

        assert pager.safety_cap == ingest.safety_cap
        assert pager.policy == BackoffPolicy(3, 1.0, 30.0)
        assert pager.page_delay == 0.25
        assert pager.max_runtime is None
