"""
StockLedger - Background Task Tests

Balance tasks are called directly; Celery only schedules them.
"""

from datetime import datetime, timedelta

from app.celery_app import celery_app
from app.config import settings
from app.tasks.celery_tasks import process_daily_balances_task, recalculate_balances_task


class TestSchedule:

    def test_nightly_balance_job(self):
        """The beat schedule runs the daily balance task at the configured time."""
        entry = celery_app.conf.beat_schedule["process-daily-balances"]

        assert entry["task"] == process_daily_balances_task.name
        assert entry["schedule"].hour == {settings.balance_job_hour}
        assert entry["schedule"].minute == {settings.balance_job_minute}


class TestBalanceTasks:

    def test_no_configured_clients(self, monkeypatch):
        """Without client codes the nightly job does nothing."""
        monkeypatch.setattr(settings, "tenant_codes", "")

        result = process_daily_balances_task(day="2026-03-10")

        assert result["clients"] == []
        assert result["start_date"] == "2026-03-10"

    def test_runs_each_configured_client(self, monkeypatch, tmp_path):
        """Every client store gets its own run and report."""
        monkeypatch.setattr(settings, "tenant_codes", "ACME, ZENITH")
        monkeypatch.setattr(
            settings, "tenant_database_url_template", f"sqlite+aiosqlite:///{tmp_path}/{{client_code}}.db",
        )
        monkeypatch.setattr(settings, "auto_create_tables", True)

        result = process_daily_balances_task(day="2026-03-10")

        assert [c["client_code"] for c in result["clients"]] == ["ACME", "ZENITH"]
        assert all(c["completed"] for c in result["clients"])
        assert result["errors"] == []

    def test_bad_client_code_is_reported(self, monkeypatch, tmp_path):
        monkeypatch.setattr(
            settings, "tenant_database_url_template", f"sqlite+aiosqlite:///{tmp_path}/{{client_code}}.db",
        )

        result = recalculate_balances_task("no such client", "2026-03-01", "2026-03-02")

        assert result["clients"] == []
        assert result["errors"][0]["code"] == "INVALID_CLIENT_CODE"

    def test_default_day_is_yesterday_utc(self, monkeypatch):
        """Ledger days are UTC days, so the default run is yesterday in UTC."""
        monkeypatch.setattr(settings, "tenant_codes", "")

        result = process_daily_balances_task()

        assert result["start_date"] == (datetime.utcnow().date() - timedelta(days=1)).isoformat()

    def test_tasks_are_never_retried(self):
        """A retried balance run could double-count a partially written day."""
        assert process_daily_balances_task.max_retries == 0
        assert recalculate_balances_task.max_retries == 0
