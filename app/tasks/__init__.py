"""
StockLedger - Background Tasks Package

Celery background tasks.
"""

from app.tasks.celery_tasks import (
    process_daily_balances_task,
    recalculate_balances_task,
    run_async,
)

__all__ = [
    "process_daily_balances_task",
    "recalculate_balances_task",
    "run_async",
]
