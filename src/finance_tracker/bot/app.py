from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.filters import Command
from aiogram.types import Message

from ..analytics.reports import find_month
from ..app.session import SessionState, SubmitResult, TrackerSession
from ..app.wiring import build_session, build_session_store, build_store
from ..config import Settings, load_settings
from ..core.dates import month_label, today_iso
from ..logging_setup import setup_logging
from ..storage.base import TransactionStore
from ..storage.session_store import SessionStore
from . import templates
from .commands import command_args, parse_add_args, parse_month_arg

logger = logging.getLogger("finance_tracker.bot")


def session_key_for(telegram_user_id: int) -> str:
    return f"tg-{telegram_user_id}"


class SessionRegistry:
    """
    One live TrackerSession per chat user, started on first use and kept
    subscribed until shutdown.
    """

    def __init__(self, settings: Settings, store: TransactionStore, session_store: SessionStore):
        self._settings = settings
        self._store = store
        self._session_store = session_store
        self._sessions: dict[str, TrackerSession] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, session_key: str) -> TrackerSession:
        async with self._locks[session_key]:
            session = self._sessions.get(session_key)
            if session is None:
                session = build_session(self._settings, self._store, self._session_store, session_key)
                self._sessions[session_key] = session

            if session.state != SessionState.READY:
                await session.start()
            elif session.feed_stopped:
                await session.resume()
            return session

    async def close_all(self) -> None:
        for key, session in list(self._sessions.items()):
            await session.aclose()
            self._sessions.pop(key, None)


def render_report_command(session: TrackerSession, args: str, *, symbol: str) -> str:
    month = parse_month_arg(args)
    if args and month is None:
        return templates.warning("Usage: `/report` or `/report YYYY-MM`")

    if month is None:
        return templates.render_reports(session.reports, symbol=symbol, stale=session.degraded)

    report = find_month(session.reports, month)
    if report is None:
        return templates.info(f"No transactions for {month_label(month)}.")
    return templates.render_month_report(report, symbol=symbol, stale=session.degraded)


async def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)

    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    bot = Bot(
        token=settings.telegram_bot_token,
        default=DefaultBotProperties(parse_mode="Markdown"),
    )
    dp = Dispatcher()

    store = build_store(settings)
    session_store = build_session_store(settings)
    registry = SessionRegistry(settings, store, session_store)
    symbol = settings.currency_symbol

    async def _session_for(message: Message) -> TrackerSession | None:
        if message.from_user is None:
            await message.answer(templates.error("Could not determine your Telegram user id."))
            return None

        session = await registry.get(session_key_for(message.from_user.id))
        if session.state == SessionState.AUTH_FAILED:
            await message.answer(templates.auth_failed_message())
            return None
        return session

    @dp.message(Command("start"))
    async def cmd_start(message: Message) -> None:
        if message.from_user is not None:
            session_store.save(session_key_for(message.from_user.id), chat_id=message.chat.id)
        session = await _session_for(message)
        if session is None:
            return
        await message.answer(templates.start_message())

    @dp.message(Command("help"))
    async def cmd_help(message: Message) -> None:
        await message.answer(templates.help_message())

    @dp.message(Command("categories"))
    async def cmd_categories(message: Message) -> None:
        await message.answer(templates.render_categories())

    async def _reply_submit(message: Message, result: SubmitResult) -> None:
        if result.status == "saved":
            await message.answer(templates.saved_message(result.transaction, symbol=symbol))
        elif result.status == "rejected":
            await message.answer(templates.rejection_message(result.rejection))
        elif result.status == "busy":
            await message.answer(templates.busy_message())
        elif result.status == "failed":
            await message.answer(templates.write_failed_message(result.error or "unknown error"))
        elif result.status == "empty":
            await message.answer(templates.info("Nothing to retry."))
        else:
            await message.answer(templates.auth_failed_message())

    @dp.message(Command("add"))
    async def cmd_add(message: Message) -> None:
        session = await _session_for(message)
        if session is None:
            return

        args = command_args(message.text)
        if not args:
            await message.answer(
                templates.warning("Usage: `/add <amount> <category> [YYYY-MM-DD] [description]`")
            )
            return

        draft = parse_add_args(args, today=today_iso(settings.timezone))
        result = await session.submit(draft)
        await _reply_submit(message, result)

    @dp.message(Command("retry"))
    async def cmd_retry(message: Message) -> None:
        session = await _session_for(message)
        if session is None:
            return
        result = await session.retry()
        await _reply_submit(message, result)

    @dp.message(Command("recent"))
    async def cmd_recent(message: Message) -> None:
        session = await _session_for(message)
        if session is None:
            return
        await session.wait_for_snapshot(timeout=10)
        text = templates.render_transactions(session.transactions, symbol=symbol)
        if session.degraded:
            text += "\n\n" + templates.warning("Live updates are unavailable, list may be stale.")
        await message.answer(text)

    @dp.message(Command("report"))
    async def cmd_report(message: Message) -> None:
        session = await _session_for(message)
        if session is None:
            return
        await session.wait_for_snapshot(timeout=10)
        await message.answer(render_report_command(session, command_args(message.text), symbol=symbol))

    @dp.message(Command("autoreports"))
    async def cmd_autoreports(message: Message) -> None:
        if message.from_user is None:
            return
        key = session_key_for(message.from_user.id)

        action = command_args(message.text).lower() or "status"
        if action == "on":
            session_store.save(key, chat_id=message.chat.id, autoreports_enabled=True)
            await message.answer(templates.success("Monthly reports enabled"))
            return
        if action == "off":
            session_store.save(key, autoreports_enabled=False)
            await message.answer(templates.success("Monthly reports disabled"))
            return

        rec = session_store.load(key)
        await message.answer(f"Monthly reports: {'ON' if rec and rec.autoreports_enabled else 'OFF'}")

    from .scheduler import create_scheduler, start_jobs

    scheduler = create_scheduler(logger)
    start_jobs(
        scheduler,
        loop=asyncio.get_running_loop(),
        bot=bot,
        session_store=session_store,
        get_session=registry.get,
        render_month=lambda report, stale=False: templates.render_month_report(
            report, symbol=symbol, stale=stale
        ),
        logger=logger,
    )

    logger.info("Starting Telegram bot polling (backend=%s)...", settings.store_backend)
    try:
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        await registry.close_all()
        await store.aclose()
        await bot.session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
