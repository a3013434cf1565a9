import asyncio
import logging

import pytest

from finance_tracker.app.session import SessionState, TrackerSession
from finance_tracker.bot import scheduler as sched
from finance_tracker.bot.templates import render_month_report
from finance_tracker.core.dates import current_month_key, previous_month_key
from finance_tracker.ledger.models import TransactionDraft
from finance_tracker.storage.base import UserScope
from finance_tracker.storage.local_store import LocalTransactionStore
from finance_tracker.storage.session_store import SessionStore


class DummyBot:
    def __init__(self, fail_for: set[int] | None = None):
        self.sent: list[tuple[int, str]] = []
        self.fail_for = fail_for or set()

    async def send_message(self, chat_id: int, text: str) -> None:
        if chat_id in self.fail_for:
            raise RuntimeError("chat not found")
        self.sent.append((chat_id, text))


class FixedIdentity:
    def __init__(self, uid: str):
        self.uid = uid

    async def establish(self) -> UserScope:
        return UserScope(uid=self.uid)

    async def aclose(self) -> None:
        return None


def test_parse_cron():
    assert sched._parse_cron("0 9 1 * *") == {
        "minute": "0",
        "hour": "9",
        "day": "1",
        "month": "*",
        "day_of_week": "*",
    }
    with pytest.raises(ValueError):
        sched._parse_cron("0 9 1 *")


def test_load_schedule_config_test_mode(monkeypatch):
    monkeypatch.setenv("SCHED_TEST_MODE", "1")
    monkeypatch.setenv("SCHED_TZ", "Europe/Kyiv")
    cfg = sched.load_schedule_config()
    assert cfg.test_mode
    assert cfg.tz_name == "Europe/Kyiv"
    assert cfg.monthly_cron == "*/3 * * * *"


def test_send_monthly_reports_only_to_enabled_chats(tmp_path):
    sessions = SessionStore(tmp_path / "sessions")
    sessions.save("tg-1", chat_id=101, autoreports_enabled=True)
    sessions.save("tg-2", chat_id=102, autoreports_enabled=False)
    sessions.save("tg-3", chat_id=103, autoreports_enabled=True)
    sessions.save("tg-4", autoreports_enabled=True)

    store = LocalTransactionStore(tmp_path / "ledger")
    month = previous_month_key(current_month_key("UTC"))
    bot = DummyBot(fail_for={103})
    live: dict[str, TrackerSession] = {}

    async def get_session(key: str) -> TrackerSession:
        if key not in live:
            live[key] = TrackerSession(store, FixedIdentity(key))
            await live[key].start()
        return live[key]

    async def run() -> int:
        s1 = await get_session("tg-1")
        await s1.submit(TransactionDraft(amount="30", category="Groceries", date=f"{month}-15"))
        return await sched.send_monthly_reports(
            bot=bot,
            session_store=sessions,
            get_session=get_session,
            render_month=lambda report, stale=False: render_month_report(report, stale=stale, md=False),
            tz_name="UTC",
            logger=logging.getLogger("test"),
            snapshot_timeout=1,
        )

    sent = asyncio.run(run())

    assert sent == 2
    assert [chat for chat, _ in bot.sent] == [101]
    assert "Groceries" in bot.sent[0][1]


def test_monthly_summary_for_empty_month(tmp_path):
    store = LocalTransactionStore(tmp_path)

    async def run() -> str:
        session = TrackerSession(store, FixedIdentity("u"))
        assert await session.start() == SessionState.READY
        return sched.monthly_summary_text(session, "2024-02", lambda r, stale=False: "REPORT")

    assert "February 2024" in asyncio.run(run())
