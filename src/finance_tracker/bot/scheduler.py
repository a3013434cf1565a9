from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..analytics.reports import find_month
from ..app.session import SessionState, TrackerSession
from ..core.dates import current_month_key, month_label, previous_month_key
from ..storage.session_store import SessionStore

load_dotenv()


@dataclass(frozen=True)
class ScheduleConfig:
    test_mode: bool
    tz_name: str
    monthly_cron: str


def load_schedule_config() -> ScheduleConfig:
    """
    Env:
    - SCHED_TEST_MODE=1 -> monthly report every 3 min (dev)
    - SCHED_TZ=UTC (default)
    - SCHED_MONTHLY_CRON="0 9 1 * *" (1st day 09:00)
    """
    test_mode = os.getenv("SCHED_TEST_MODE", "").strip() == "1"
    tz_name = os.getenv("SCHED_TZ", "UTC").strip() or "UTC"
    monthly_cron = os.getenv("SCHED_MONTHLY_CRON", "0 9 1 * *").strip()

    if test_mode:
        monthly_cron = "*/3 * * * *"

    return ScheduleConfig(test_mode=test_mode, tz_name=tz_name, monthly_cron=monthly_cron)


def _parse_cron(expr: str) -> dict:
    parts = expr.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression: {expr}")
    minute, hour, day, month, dow = parts
    return {
        "minute": minute,
        "hour": hour,
        "day": day,
        "month": month,
        "day_of_week": dow,
    }


def create_scheduler(logger: logging.Logger, cfg: ScheduleConfig | None = None) -> AsyncIOScheduler:
    cfg = cfg or load_schedule_config()
    try:
        tz = ZoneInfo(cfg.tz_name)
    except ZoneInfoNotFoundError:
        logger.warning("ZoneInfo timezone not found: %s. Falling back to UTC.", cfg.tz_name)
        tz = ZoneInfo("UTC")
    return AsyncIOScheduler(timezone=tz)


async def safe_send(bot, chat_id: int, text: str, logger: logging.Logger) -> None:
    try:
        await bot.send_message(chat_id=chat_id, text=text)
    except Exception as e:
        # one unreachable chat must not stop the rest of the batch
        logger.warning("Failed to send message to chat_id=%s: %s", chat_id, e)


def monthly_summary_text(
    session: TrackerSession,
    month_key: str,
    render_month: Callable[..., str],
) -> str:
    report = find_month(session.reports, month_key)
    if report is None:
        return f"ℹ️ No transactions recorded for {month_label(month_key)}."
    return render_month(report, stale=session.degraded)


async def send_monthly_reports(
    *,
    bot,
    session_store: SessionStore,
    get_session: Callable[[str], Awaitable[TrackerSession]],
    render_month: Callable[..., str],
    tz_name: str,
    logger: logging.Logger,
    snapshot_timeout: float = 15.0,
) -> int:
    month_key = previous_month_key(current_month_key(tz_name))
    logger.info("Scheduler: monthly_report started (month=%s)", month_key)

    sent = 0
    for rec in session_store.iter_all():
        if not rec.autoreports_enabled or rec.chat_id is None:
            continue

        session = await get_session(rec.session_key)
        if session.state != SessionState.READY:
            logger.warning("Scheduler: session %s is %s, skipping", rec.session_key, session.state.value)
            continue

        await session.wait_for_snapshot(timeout=snapshot_timeout)
        await safe_send(bot, rec.chat_id, monthly_summary_text(session, month_key, render_month), logger)
        sent += 1

    logger.info("Scheduler: monthly_report done. sent=%s", sent)
    return sent


def start_jobs(
    scheduler: AsyncIOScheduler,
    *,
    loop: asyncio.AbstractEventLoop,
    bot,
    session_store: SessionStore,
    get_session: Callable[[str], Awaitable[TrackerSession]],
    render_month: Callable[..., str],
    logger: logging.Logger,
    cfg: ScheduleConfig | None = None,
) -> None:
    cfg = cfg or load_schedule_config()

    def monthly_wrapper() -> None:
        loop.create_task(
            send_monthly_reports(
                bot=bot,
                session_store=session_store,
                get_session=get_session,
                render_month=render_month,
                tz_name=cfg.tz_name,
                logger=logger,
            )
        )

    scheduler.add_job(
        monthly_wrapper,
        CronTrigger(**_parse_cron(cfg.monthly_cron)),
        id="monthly_report",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Scheduler started (test_mode=%s). monthly='%s' tz=%s",
        cfg.test_mode,
        cfg.monthly_cron,
        cfg.tz_name,
    )
