import argparse
import asyncio
import logging

from . import __version__
from .config import Settings, load_settings
from .logging_setup import setup_logging

CLI_SESSION_KEY = "cli"


def mask(value: str | None, show: int = 4) -> str:
    if not value:
        return "None"
    if len(value) <= show:
        return "*" * len(value)
    return value[:show] + "*" * (len(value) - show)


async def _with_session(settings: Settings, action, *, on_change=None):
    from .app.session import SessionState
    from .app.wiring import build_session, build_session_store, build_store

    store = build_store(settings)
    session = build_session(
        settings, store, build_session_store(settings), CLI_SESSION_KEY, on_change=on_change
    )
    try:
        state = await session.start()
        if state != SessionState.READY:
            print("error =", session.auth_error)
            return 2
        await session.wait_for_snapshot(timeout=15)
        return await action(session)
    finally:
        await session.aclose()
        await store.aclose()


def _cmd_add(settings: Settings, args) -> int:
    from .bot.templates import transaction_line
    from .core.dates import today_iso
    from .ledger.models import TransactionDraft

    draft = TransactionDraft(
        amount=args.amount,
        category=args.category,
        date=args.date or today_iso(settings.timezone),
        description=args.description,
    )

    async def action(session) -> int:
        result = await session.submit(draft)
        if result.ok:
            print("saved:", transaction_line(result.transaction, symbol=settings.currency_symbol, md=False))
            return 0
        if result.rejection is not None:
            print(f"rejected ({result.rejection.reason}):", result.rejection.message)
            return 1
        print(f"{result.status}:", result.error)
        return 1

    return asyncio.run(_with_session(settings, action))


def _cmd_list(settings: Settings, args) -> int:
    from .bot.templates import render_transactions

    async def action(session) -> int:
        print(render_transactions(session.transactions, limit=args.limit, symbol=settings.currency_symbol, md=False))
        if session.degraded:
            print("warning = live feed unavailable:", session.feed_error)
        return 0

    return asyncio.run(_with_session(settings, action))


def _cmd_report(settings: Settings, args) -> int:
    from .analytics.reports import find_month
    from .bot.templates import render_month_report, render_reports

    async def action(session) -> int:
        if args.month:
            report = find_month(session.reports, args.month)
            if report is None:
                print(f"no transactions for {args.month}")
                return 0
            print(render_month_report(report, symbol=settings.currency_symbol, stale=session.degraded, md=False))
            return 0

        print(
            render_reports(
                session.reports,
                limit=args.months,
                symbol=settings.currency_symbol,
                stale=session.degraded,
                md=False,
            )
        )
        return 0

    return asyncio.run(_with_session(settings, action))


def _cmd_watch(settings: Settings, args) -> int:
    from .bot.templates import render_reports

    def on_change(session) -> None:
        if not session.reports and not session.degraded:
            return
        print(
            render_reports(
                session.reports,
                limit=args.months,
                symbol=settings.currency_symbol,
                stale=session.degraded,
                md=False,
            )
        )
        print("──")

    async def action(session) -> int:
        print("watching for changes, Ctrl+C to stop")
        await asyncio.Event().wait()
        return 0

    try:
        return asyncio.run(_with_session(settings, action, on_change=on_change))
    except KeyboardInterrupt:
        return 0


def main() -> int:
    parser = argparse.ArgumentParser(prog="finance-tracker")
    parser.add_argument("--version", action="store_true", help="Print version and exit")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("health", help="Check configuration and exit")
    sub.add_parser("status-env", help="Show effective settings with secrets masked")
    sub.add_parser("categories", help="List categories")

    p_add = sub.add_parser("add", help="Record a transaction")
    p_add.add_argument("amount", help="Positive amount, e.g. 25.50")
    p_add.add_argument("category", help="Category name, e.g. Groceries")
    p_add.add_argument("--date", default=None, help="YYYY-MM-DD. Default: today")
    p_add.add_argument("--description", default=None, help="Free text note")

    p_list = sub.add_parser("list", help="Show recent transactions")
    p_list.add_argument("--limit", type=int, default=20)

    p_report = sub.add_parser("report", help="Show monthly reports")
    p_report.add_argument("--month", default=None, help="YYYY-MM. Default: latest months")
    p_report.add_argument("--months", type=int, default=3)

    p_watch = sub.add_parser("watch", help="Reprint reports on every change")
    p_watch.add_argument("--months", type=int, default=3)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return 0

    settings = load_settings()
    setup_logging(settings.log_level)

    logger = logging.getLogger(__name__)

    command = args.command or "health"

    if command == "health":
        logger.info("Configuration loaded (backend=%s).", settings.store_backend)
        print("ok")
        return 0

    if command == "status-env":
        print("STORE_BACKEND =", settings.store_backend)
        print("CACHE_DIR =", settings.cache_dir)
        print("USER_SCOPE =", settings.user_scope)
        print("FIREBASE_API_KEY =", mask(settings.firebase_api_key))
        print("FIREBASE_DATABASE_URL =", settings.firebase_database_url)
        print("FIREBASE_AUTH_TOKEN =", mask(settings.firebase_auth_token))
        print("MASTER_KEY =", mask(settings.master_key))
        print("TELEGRAM_BOT_TOKEN =", mask(settings.telegram_bot_token))
        print("TIMEZONE =", settings.timezone)
        print("LOG_LEVEL =", settings.log_level)
        return 0

    if command == "categories":
        from .bot.templates import render_categories

        print(render_categories(md=False))
        return 0

    if command == "add":
        return _cmd_add(settings, args)

    if command == "list":
        return _cmd_list(settings, args)

    if command == "report":
        return _cmd_report(settings, args)

    if command == "watch":
        return _cmd_watch(settings, args)

    return 1
