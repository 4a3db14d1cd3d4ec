"""
StockLedger - Celery Tasks

Background balance jobs. Each task runs on its own event loop, so it opens
its own tenant stores and disposes them before returning.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from celery import shared_task

from app.config import settings
from app.services.balance_service import BalanceRunReport, BalanceService
from app.tenancy import TenantStoreResolver
from app.utils.error_handling import AppException

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _parse_day(value: Optional[str], default: date) -> date:
    if not value:
        return default
    return datetime.strptime(value, "%Y-%m-%d").date()


def _report_dict(client_code: str, report: BalanceRunReport) -> Dict[str, Any]:
    return {
        "client_code": client_code,
        "start_date": report.start_date.isoformat(),
        "end_date": report.end_date.isoformat(),
        "days_completed": report.days_completed,
        "snapshots_written": report.snapshots_written,
        "failures": [
            {
                "product_id": str(f.product_id),
                "balance_date": f.balance_date.isoformat(),
                "code": f.code,
                "message": f.message,
            }
            for f in report.failures
        ],
        "resume_from": report.resume_from.isoformat() if report.resume_from else None,
        "completed": report.completed,
    }


async def _run_for_clients(client_codes: List[str], start: date, end: date) -> Dict[str, Any]:
    stores = TenantStoreResolver()
    results = []
    errors = []
    try:
        for code in client_codes:
            try:
                async with await stores.open_context(code) as tenant:
                    report = await BalanceService(tenant).process_balance_range(start, end)
                results.append(_report_dict(tenant.client_code, report))
            except AppException as e:
                logger.error(f"Balance job for client {code} failed: {e.message}")
                errors.append({"client_code": code, "code": e.code.value, "message": e.message})
    finally:
        await stores.dispose()

    return {
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "clients": results,
        "errors": errors,
    }


# ===========================================
# BALANCE TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.process_daily_balances_task', max_retries=0)
def process_daily_balances_task(day: Optional[str] = None, client_code: Optional[str] = None) -> Dict[str, Any]:
    """
    Calculate one day's snapshots (yesterday by default) for one client or
    for every configured client.
    """
    target = _parse_day(day, datetime.utcnow().date() - timedelta(days=1))
    client_codes = [client_code] if client_code else settings.tenant_codes_list
    if not client_codes:
        logger.warning("No client codes configured, skipping daily balances")
        return {"start_date": target.isoformat(), "end_date": target.isoformat(), "clients": [], "errors": []}

    logger.info(f"Processing daily balances for {target} ({len(client_codes)} clients)")
    return run_async(_run_for_clients(client_codes, target, target))


@shared_task(name='app.tasks.celery_tasks.recalculate_balances_task', max_retries=0)
def recalculate_balances_task(client_code: str, start_date: str, end_date: str) -> Dict[str, Any]:
    """Re-derive one client's snapshots over a date range."""
    start = _parse_day(start_date, datetime.utcnow().date())
    end = _parse_day(end_date, start)
    logger.info(f"Recalculating balances for {client_code}: {start}..{end}")
    return run_async(_run_for_clients([client_code], start, end))
