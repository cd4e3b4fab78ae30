from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

from sqlalchemy import func, select

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from backend.app.models import User, UserSession
from backend.app.services import AccountService, ProfileService, SessionService
from backend.app.utils.errors import Unauthorized
from backend.app.utils.timeutil import ensure_utc
from backend.tests.support import T0, DBTestCase

SECRET = "test-secret"


class SessionServiceTests(DBTestCase):
    def service(self, session) -> SessionService:
        return SessionService(session, secret=SECRET, days=7)

    async def test_open_and_resolve(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            issued = await self.service(session).open_session(alice, now=T0)
        self.assertEqual(issued.expires_at, T0 + timedelta(days=7))

        async with self.session() as session:
            self.assertEqual(
                await self.service(session).resolve(issued.token, now=T0 + timedelta(hours=1)),
                (alice, "ok"),
            )

    async def test_revoked_token_no_longer_resolves(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            first = await self.service(session).open_session(alice, now=T0)
            second = await self.service(session).open_session(alice, now=T0)

        async with self.session() as session:
            with self.assertLogs("backend.app.services.sessions", level="INFO"):
                self.assertTrue(await self.service(session).revoke(first.token, now=T0 + timedelta(minutes=5)))
            self.assertFalse(await self.service(session).revoke(first.token, now=T0 + timedelta(minutes=6)))

        async with self.session() as session:
            service = self.service(session)
            self.assertEqual(await service.resolve(first.token, now=T0 + timedelta(minutes=10)), (None, "revoked"))
            # 只撤销当前设备的会话
            self.assertEqual(await service.resolve(second.token, now=T0 + timedelta(minutes=10)), (alice, "ok"))

    async def test_revoke_ignores_invalid_token(self):
        async with self.session() as session:
            self.assertFalse(await self.service(session).revoke("garbage", now=T0))
            self.assertFalse(await self.service(session).revoke(None, now=T0))

    async def test_unknown_and_expired_sessions(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            issued = await SessionService(session, secret=SECRET, days=1).open_session(alice, now=T0)

        async with self.session() as session:
            self.assertEqual(
                await self.service(session).resolve(issued.token, now=T0 + timedelta(days=2)),
                (None, "expired"),
            )

        async with self.session() as session:
            await session.execute(UserSession.__table__.delete())
            await session.commit()
        async with self.session() as session:
            self.assertEqual(
                await self.service(session).resolve(issued.token, now=T0),
                (None, "unknown_session"),
            )

    async def test_delete_account_drops_sessions(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            issued = await self.service(session).open_session(alice, now=T0)

        async with self.session() as session:
            await AccountService(session).delete_account(alice, now=T0)

        async with self.session() as session:
            remaining = (await session.execute(select(func.count(UserSession.id)))).scalar_one()
            resolved = await self.service(session).resolve(issued.token, now=T0)
        self.assertEqual(remaining, 0)
        self.assertEqual(resolved, (None, "unknown_session"))


class ProfileServiceTests(DBTestCase):
    async def test_update_only_given_fields(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            user = await ProfileService(session).update_profile(
                alice, {"display_name": "  Ally  ", "avatar": "avatars/a.png"}, now=T0
            )
        self.assertEqual(user.display_name, "Ally")
        self.assertEqual(user.avatar, "avatars/a.png")

        async with self.session() as session:
            await ProfileService(session).update_profile(alice, {"avatar": None}, now=T0 + timedelta(hours=1))

        row = await self.get_row(User, alice)
        self.assertEqual(row.display_name, "Ally")
        self.assertIsNone(row.avatar)
        self.assertEqual(ensure_utc(row.updated_at), T0 + timedelta(hours=1))

    async def test_blank_display_name_clears_it(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            await ProfileService(session).update_profile(alice, {"display_name": "   "}, now=T0)
        self.assertIsNone((await self.get_row(User, alice)).display_name)

    async def test_empty_changes_leave_row_untouched(self):
        alice = await self.add_user("alice")
        before = await self.get_row(User, alice)
        async with self.session() as session:
            await ProfileService(session).update_profile(alice, {}, now=T0)
        after = await self.get_row(User, alice)
        self.assertEqual(after.display_name, before.display_name)
        self.assertEqual(after.updated_at, before.updated_at)

    async def test_unknown_user(self):
        async with self.session() as session:
            with self.assertRaises(Unauthorized):
                await ProfileService(session).update_profile(999, {"display_name": "ghost"}, now=T0)
