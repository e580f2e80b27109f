"""
Integration tests for the weekly digest job.

External services (GNews, Claude, the delivery webhook) are mocked; merge,
sanitize, change tracking and run history run for real.
"""

import importlib.util
import os

import pytest
from unittest.mock import patch

from ipo_digest.models import DigestRun, DigestRunStatus
from ipo_digest.services.agent import run_weekly_digest
from ipo_digest.services.gnews_client import GNewsError
from ipo_digest.services.webhook import WebhookError
from tests.fixtures.sample_data import create_article

SCRIPT_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    'scripts', 'weekly_job.py'
)


def _load_weekly_job():
    spec = importlib.util.spec_from_file_location('weekly_job', SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _extracted(*items):
    stats = {
        'articles_total': len(items),
        'items_extracted': len(items),
        'articles_skipped': 0,
        'articles_failed': 0,
    }
    return list(items), stats


@pytest.fixture
def mock_sources():
    """Patch the fetch, extract and post steps of the agent."""
    with patch('ipo_digest.services.agent.get_articles') as mock_articles, \
         patch('ipo_digest.services.agent.extract_items') as mock_extract, \
         patch('ipo_digest.services.agent.post_digest') as mock_post:
        mock_articles.return_value = [create_article() for _ in range(3)]
        yield mock_articles, mock_extract, mock_post


class TestRunWeeklyDigest:
    """Tests for run_weekly_digest orchestration."""

    def test_pipeline_merges_and_sanitizes(self, mock_sources):
        mock_articles, mock_extract, mock_post = mock_sources
        mock_extract.return_value = _extracted(
            {'company': 'Acme Ltd', 'status': 'DRHP filed', 'issue_size_cr': '₹1,000 Cr',
             'links': {'news': 'https://example.com/1'}},
            {'company': 'Acme Limited', 'status': 'RHP', 'lead_banks': 'Axis Capital; Kotak',
             'links': {'news': 'https://example.com/2', 'drhp': 'NA'}},
            {'company': '', 'status': 'rumor'},
        )

        stats = run_weekly_digest(max_articles=5)

        mock_articles.assert_called_once_with(5)
        payload = mock_post.call_args[0][0]
        assert payload['timezone'] == 'Asia/Kolkata'
        assert payload['changes_since_last_run'] == 'Automated weekly run'
        assert payload['items'] == [{
            'company': 'Acme Limited',
            'status': 'RHP',
            'issue_size_cr': 1000.0,
            'lead_banks': ['Axis Capital', 'Kotak'],
            'links': {'news': 'https://example.com/2'},
        }]

        assert stats['articles'] == 3
        assert stats['extracted'] == 3
        assert stats['merged'] == 2
        assert stats['dropped'] == 1
        assert stats['sent'] == 1
        assert stats['as_of_date'] == payload['as_of_date']
        assert stats['errors'] == []
        assert 'duration_seconds' in stats

    def test_empty_run_still_posts(self, mock_sources):
        _, mock_extract, mock_post = mock_sources
        mock_extract.return_value = _extracted()

        stats = run_weekly_digest()

        assert mock_post.call_args[0][0]['items'] == []
        assert stats['sent'] == 0

    def test_fetch_error_aborts_before_post(self, mock_sources):
        mock_articles, _, mock_post = mock_sources
        mock_articles.side_effect = GNewsError("GNews 403: quota", status_code=403)

        with pytest.raises(GNewsError):
            run_weekly_digest()

        mock_post.assert_not_called()

    def test_history_failure_is_not_fatal(self, mock_sources):
        _, mock_extract, mock_post = mock_sources
        mock_extract.return_value = _extracted({'company': 'Acme', 'status': 'RHP'})

        with patch('ipo_digest.services.agent.load_previous_items', side_effect=RuntimeError("db down")):
            stats = run_weekly_digest()

        assert stats['changes'] == 'Automated weekly run'
        assert stats['errors'] == ['History load: db down']
        mock_post.assert_called_once()


class TestRunHistory:
    """Tests for change tracking across runs with a database."""

    def test_second_run_describes_changes(self, mock_sources, db_session):
        _, mock_extract, mock_post = mock_sources

        mock_extract.return_value = _extracted(
            {'company': 'Acme', 'status': 'DRHP'},
            {'company': 'Beta', 'status': 'rumor'},
        )
        run_weekly_digest()
        assert mock_post.call_args[0][0]['changes_since_last_run'] == 'Automated weekly run'

        mock_extract.return_value = _extracted(
            {'company': 'Acme Ltd', 'status': 'approved'},
            {'company': 'Gamma', 'status': 'RHP'},
        )
        stats = run_weekly_digest()

        expected = "New: Gamma; Status upgrades: Acme Ltd (DRHP -> approved); No longer in the news: Beta"
        assert stats['changes'] == expected
        assert mock_post.call_args[0][0]['changes_since_last_run'] == expected

        runs = db_session.query(DigestRun).order_by(DigestRun.started_at).all()
        assert [r.status for r in runs] == [DigestRunStatus.COMPLETED, DigestRunStatus.COMPLETED]
        assert runs[1].item_count == 2
        assert runs[1].article_count == 3
        assert runs[1].changes_summary == expected

    def test_failed_post_recorded_and_ignored_next_time(self, mock_sources, db_session):
        _, mock_extract, mock_post = mock_sources
        mock_extract.return_value = _extracted({'company': 'Acme', 'status': 'DRHP'})
        mock_post.side_effect = WebhookError(500, 'server exploded')

        with pytest.raises(WebhookError):
            run_weekly_digest()

        run = db_session.query(DigestRun).one()
        assert run.status == DigestRunStatus.FAILED
        assert 'server exploded' in run.error_message

        mock_post.side_effect = None
        stats = run_weekly_digest()

        assert stats['changes'] == 'Automated weekly run'

    def test_failed_fetch_recorded(self, mock_sources, db_session):
        mock_articles, mock_extract, mock_post = mock_sources
        mock_articles.side_effect = GNewsError("GNews retries exhausted")

        with pytest.raises(GNewsError):
            run_weekly_digest()

        run = db_session.query(DigestRun).one()
        assert run.status == DigestRunStatus.FAILED
        assert run.error_message == "GNews retries exhausted"
        assert run.article_count == 0
        assert run.items == []
        assert len(run.as_of_date) == 10
        mock_extract.assert_not_called()
        mock_post.assert_not_called()

    def test_failed_extraction_recorded(self, mock_sources, db_session):
        _, mock_extract, mock_post = mock_sources
        mock_extract.side_effect = ValueError("ANTHROPIC_API_KEY environment variable not set")

        with pytest.raises(ValueError):
            run_weekly_digest()

        run = db_session.query(DigestRun).one()
        assert run.status == DigestRunStatus.FAILED
        assert run.article_count == 3
        assert 'ANTHROPIC_API_KEY' in run.error_message
        mock_post.assert_not_called()


class TestWeeklyJobScript:
    """Tests for scripts/weekly_job.py exit codes."""

    @pytest.fixture
    def weekly_job(self, monkeypatch):
        module = _load_weekly_job()
        monkeypatch.setenv('WEBHOOK_URL', 'https://digest.example.com/monthly')
        monkeypatch.setenv('SHARED_SECRET', 's3cret')
        monkeypatch.setenv('ANTHROPIC_API_KEY', 'sk-ant-test')
        monkeypatch.setenv('GNEWS_API_KEY', 'gnews-test')
        return module

    def test_missing_config_exits_2(self, weekly_job, monkeypatch):
        monkeypatch.delenv('SHARED_SECRET')
        monkeypatch.delenv('GNEWS_API_KEY')

        assert weekly_job.missing_config() == ['WEBHOOK_URL or SHARED_SECRET', 'GNEWS_API_KEY']
        assert weekly_job.main() == 2

    def test_success_exits_0(self, weekly_job, monkeypatch):
        monkeypatch.setattr(weekly_job, 'run_weekly_digest', lambda: {'sent': 4, 'duration_seconds': 1.0})
        assert weekly_job.main() == 0

    def test_webhook_failure_exits_1(self, weekly_job, monkeypatch):
        def fail():
            raise WebhookError(401, '{"error":"Unauthorized"}')

        monkeypatch.setattr(weekly_job, 'run_weekly_digest', fail)
        assert weekly_job.main() == 1

    def test_other_failure_exits_1(self, weekly_job, monkeypatch):
        def fail():
            raise GNewsError("GNews retries exhausted")

        monkeypatch.setattr(weekly_job, 'run_weekly_digest', fail)
        assert weekly_job.main() == 1
