"""
End-to-end tests for the sync runner with in-memory collaborators
"""

import asyncio
import logging
from datetime import date

import pytest

from core.exceptions import PlanUnavailable, ProvisioningError
from ingestion.history import RunHistory
from ingestion.runner import SyncRunner
from models.base import DateStatus, SyncStatus


D1, D2, D3 = date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)
TODAY = date(2024, 6, 30)


@pytest.mark.asyncio
async def test_full_window_is_delivered(sink_factory, source_factory, sample_config):
    sink = sink_factory()
    source = source_factory(pages={D1: [120], D2: [30], D3: [75]})

    summary = await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert summary.status == SyncStatus.COMPLETED
    assert summary.succeeded_dates == [D1, D2, D3]
    assert summary.failed_dates == []
    assert summary.rows_retrieved == 225
    assert summary.rows_delivered == 225
    assert len(sink.rows) == 225
    assert await sink.max_date(None) == D3


@pytest.mark.asyncio
async def test_failed_fetch_only_drops_that_date(sink_factory, source_factory, sample_config):
    """D2 fails on its second page; D1 and D3 are still delivered"""
    sink = sink_factory()
    source = source_factory(
        pages={D1: [10], D2: [25000, 40], D3: [5]},
        failing={D2: 25000}
    )

    summary = await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert summary.status == SyncStatus.PARTIAL_FAILURE
    assert summary.succeeded_dates == [D1, D3]
    assert summary.failed_dates == [D2]

    by_date = {r.date: r for r in summary.results}
    assert by_date[D2].status == DateStatus.FETCH_FAILED
    assert by_date[D2].rows_delivered == 0
    assert "Page request failed" in by_date[D2].error

    stored_dates = {row["date"] for row in sink.rows.values()}
    assert stored_dates == {D1.isoformat(), D3.isoformat()}
    assert len(sink.rows) == 15


@pytest.mark.asyncio
async def test_failed_delivery_only_drops_that_date(sink_factory, source_factory, sample_config):
    sink = sink_factory()
    sink.fail_on_chunk = lambda rows: rows[0]["date"] == D3.isoformat()
    source = source_factory(pages={D1: [10], D2: [20], D3: [30]})

    summary = await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert summary.status == SyncStatus.PARTIAL_FAILURE
    assert summary.failed_dates == [D3]

    d3 = summary.results[2]
    assert d3.status == DateStatus.DELIVERY_FAILED
    assert d3.rows_retrieved == 30
    assert d3.rows_delivered == 0
    assert summary.rows_delivered == 30


@pytest.mark.asyncio
async def test_empty_dates_are_not_failures(sink_factory, source_factory, sample_config):
    sink = sink_factory()
    source = source_factory(pages={D2: [4]})

    summary = await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert summary.status == SyncStatus.COMPLETED
    assert [r.status for r in summary.results] == [DateStatus.EMPTY, DateStatus.SUCCEEDED, DateStatus.EMPTY]
    assert summary.succeeded_dates == [D2]
    assert len(sink.insert_calls) == 1


@pytest.mark.asyncio
async def test_rerun_resumes_after_latest_date(sink_factory, source_factory, sample_config):
    sink = sink_factory()
    source = source_factory(pages={D1: [3], D2: [3], D3: [3], date(2024, 1, 4): [3]})
    runner = SyncRunner(sink, source)

    await runner.run(sample_config, today=TODAY)
    second = await runner.run(sample_config, today=TODAY)

    assert second.plan.start_date == date(2024, 1, 4)
    assert second.plan.end_date == date(2024, 1, 6)
    assert len(sink.rows) == 12


@pytest.mark.asyncio
async def test_new_table_ends_run_when_sink_needs_warmup(sink_factory, source_factory, sample_config):
    sink = sink_factory(table_exists=False, requires_warmup=True)
    source = source_factory(pages={D1: [10]})

    summary = await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert summary.status == SyncStatus.PROVISIONED
    assert summary.results == []
    assert source.calls == []
    assert sink.table_exists


@pytest.mark.asyncio
async def test_new_table_continues_without_warmup(sink_factory, source_factory, sample_config):
    sink = sink_factory(table_exists=False)
    source = source_factory(pages={D1: [10]})

    summary = await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert summary.status == SyncStatus.COMPLETED
    assert len(sink.rows) == 10


@pytest.mark.asyncio
async def test_provisioning_failure_aborts_run(sink_factory, source_factory, sample_config):
    sink = sink_factory()
    sink.fail_ensure = True
    source = source_factory(pages={D1: [10]})
    history = RunHistory()

    with pytest.raises(ProvisioningError):
        await SyncRunner(sink, source, history=history).run(sample_config, today=TODAY)

    assert source.calls == []
    assert history.last_error["error_type"] == "ProvisioningError"


@pytest.mark.asyncio
async def test_plan_failure_aborts_run(sink_factory, source_factory, sample_config):
    sink = sink_factory()
    sink.fail_max_date = True
    source = source_factory(pages={D1: [10]})

    with pytest.raises(PlanUnavailable):
        await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert source.calls == []


@pytest.mark.asyncio
async def test_not_ready_when_caught_up(sink_factory, source_factory, sample_config):
    sink = sink_factory(max_date=TODAY)
    source = source_factory()
    history = RunHistory()

    summary = await SyncRunner(sink, source, history=history).run(sample_config, today=TODAY)

    assert summary.status == SyncStatus.NOT_READY
    assert summary.plan is None
    assert source.calls == []
    assert history.latest() is summary


@pytest.mark.asyncio
async def test_concurrency_limit(sink_factory, sample_config):
    """At most max_concurrent_dates dates are fetched at once"""
    in_flight = 0
    peak = 0

    class SlowSource:
        async def query_page(self, day, dimensions, row_limit, start_row):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return []

    config = sample_config.copy(update={"window_size_days": 6, "max_concurrent_dates": 2})
    summary = await SyncRunner(sink_factory(), SlowSource()).run(config, today=TODAY)

    assert summary.status == SyncStatus.COMPLETED
    assert peak == 2


@pytest.mark.asyncio
async def test_history_records_completed_runs(sink_factory, source_factory, sample_config):
    history = RunHistory()
    runner = SyncRunner(sink_factory(), source_factory(pages={D1: [1]}), history=history)

    summary = await runner.run(sample_config, today=TODAY)

    assert len(history) == 1
    assert history.recent(5) == [summary]
    assert history.last_error is None


@pytest.mark.asyncio
async def test_failed_date_before_delivered_date_is_logged_as_gap(
    sink_factory, source_factory, sample_config, caplog
):
    sink = sink_factory()
    source = source_factory(pages={D1: [2], D2: [2], D3: [2]}, failing={D2: 0})

    with caplog.at_level(logging.WARNING, logger="ingestion.runner"):
        await SyncRunner(sink, source).run(sample_config, today=TODAY)

    gap_warnings = [r.message for r in caplog.records if "manual backfill" in r.message]
    assert len(gap_warnings) == 1
    assert "2024-01-02" in gap_warnings[0]

    # The next run resumes after D3, so D2 is never planned again
    second = await SyncRunner(sink, source).run(sample_config, today=TODAY)
    assert second.plan.start_date == date(2024, 1, 4)


@pytest.mark.asyncio
async def test_trailing_failed_date_is_not_a_gap(sink_factory, source_factory, sample_config, caplog):
    sink = sink_factory()
    source = source_factory(pages={D1: [2], D2: [2], D3: [2]}, failing={D3: 0})

    with caplog.at_level(logging.WARNING, logger="ingestion.runner"):
        summary = await SyncRunner(sink, source).run(sample_config, today=TODAY)

    assert summary.failed_dates == [D3]
    assert not [r for r in caplog.records if "manual backfill" in r.message]

    # D3 is retried by the next run
    second = await SyncRunner(sink, source_factory(pages={D3: [2]})).run(sample_config, today=TODAY)
    assert second.plan.start_date == D3
