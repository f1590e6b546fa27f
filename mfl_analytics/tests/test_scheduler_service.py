"""
Tests for the scheduled jobs. The scheduler is never started; job
functions are called directly.
"""

import pytest

from mfl_analytics.services.mfl_client import MFLPartialResultsError, MFLUnavailableError
from mfl_analytics.services.scheduler_service import SchedulerService
from mfl_analytics.tests.conftest import season_records


@pytest.fixture
def scheduler(app):
    scheduler = SchedulerService()
    scheduler.init_app(app)
    return scheduler


class TestJobs:
    def test_refresh_job(self, scheduler, fake_client):
        fake_client.records_by_year[2026] = season_records(2026)

        results = scheduler.current_season_refresh_job()

        assert results['success'] is True
        assert results['cache_status'] == 'REFRESH'
        assert fake_client.calls == [2026]

    def test_refresh_job_reports_failure(self, scheduler, fake_client):
        fake_client.error = MFLUnavailableError('down')

        results = scheduler.current_season_refresh_job()

        assert results['success'] is False
        assert results['errors']

    def test_refresh_job_partial_season_is_failure(self, scheduler, fake_client):
        fake_client.errors[2026] = MFLPartialResultsError('429', season_records(2026, weeks=[1, 2]), [3, 4, 5, 6])

        results = scheduler.current_season_refresh_job()

        assert results['success'] is False
        assert results['cache_status'] == 'REFRESH'
        assert 'weeks 3-6 of 2026' in results['errors'][0]

    def test_cleanup_job(self, scheduler, cache, clock):
        cache.set('aggregates:46221:2020:old', 1)
        clock.advance(31 * 86400)
        cache.set('aggregates:46221:2024:new', 2)

        assert scheduler.cache_cleanup_job() == 1
        assert cache.get_keys() == ['aggregates:46221:2024:new']

    def test_start_requires_init(self):
        with pytest.raises(RuntimeError):
            SchedulerService().start()

    def test_disabled_scheduler_does_not_start(self, scheduler):
        scheduler.start()

        assert scheduler.is_running is False
        assert scheduler.get_jobs() == []
