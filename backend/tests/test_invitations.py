from __future__ import annotations

import sys
import unittest
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import select

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from backend.app.models import Invitation
from backend.app.services import InvitationService
from backend.app.utils.errors import AlreadyPaired, CodeGenerationExhausted
from backend.app.utils.invite_code import INVITE_CODE_ALPHABET, generate_invite_code, normalize_invite_code
from backend.tests.support import T0, DBTestCase

BASE_URL = "https://journal.example.com"


class InviteCodeTests(unittest.TestCase):
    def test_code_shape(self):
        for _ in range(50):
            code = generate_invite_code()
            self.assertEqual(len(code), 8)
            self.assertTrue(set(code) <= set(INVITE_CODE_ALPHABET))

    def test_alphabet_excludes_ambiguous_characters(self):
        for ch in "01IO":
            self.assertNotIn(ch, INVITE_CODE_ALPHABET)

    def test_normalize(self):
        self.assertEqual(normalize_invite_code("  ab12cd34 "), "AB12CD34")
        self.assertEqual(normalize_invite_code(None), "")


class CreateInviteTests(DBTestCase):
    async def test_create_invite(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            info = await InvitationService(session).create_invite(alice, base_url=BASE_URL, now=T0)

        self.assertEqual(len(info.code), 8)
        self.assertEqual(info.url, f"{BASE_URL}/sign-up?code={info.code}")
        self.assertEqual(info.expires_at, T0 + timedelta(days=7))

    async def test_zero_ttl_is_honoured(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            info = await InvitationService(session, ttl=timedelta(0)).create_invite(alice, base_url=BASE_URL, now=T0)
        self.assertEqual(info.expires_at, T0)

        async with self.session() as session:
            result = await InvitationService(session).validate_invite(info.code, now=T0)
        self.assertFalse(result.valid)

    async def test_new_invite_cancels_previous_pending(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            service = InvitationService(session)
            first = await service.create_invite(alice, base_url=BASE_URL, now=T0)
            second = await service.create_invite(alice, base_url=BASE_URL, now=T0 + timedelta(minutes=5))

        async with self.session() as session:
            rows = (await session.execute(select(Invitation).order_by(Invitation.id))).scalars().all()
            statuses = {row.invite_code: row.status for row in rows}

        self.assertEqual(statuses[first.code], "cancelled")
        self.assertEqual(statuses[second.code], "pending")

    async def test_paired_user_cannot_invite(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        await self.add_relationship(alice, bob)

        async with self.session() as session:
            with self.assertRaises(AlreadyPaired):
                await InvitationService(session).create_invite(alice, base_url=BASE_URL, now=T0)

    async def test_user_in_grace_period_cannot_invite(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        await self.add_relationship(alice, bob, status="pending_deletion", ended_at=T0)

        async with self.session() as session:
            with self.assertRaises(AlreadyPaired):
                await InvitationService(session).create_invite(alice, base_url=BASE_URL, now=T0)

    async def test_stale_pointer_does_not_block(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        await self.add_relationship(alice, bob, status="deleted")

        async with self.session() as session:
            info = await InvitationService(session).create_invite(alice, base_url=BASE_URL, now=T0)
        self.assertEqual(len(info.code), 8)

    async def test_collision_retries_then_succeeds(self):
        alice = await self.add_user("alice")
        await self.add_invitation(alice, "TAKEN222", status="accepted")
        codes = iter(["TAKEN222", "TAKEN222", "FRESH333"])

        async with self.session() as session:
            service = InvitationService(session, code_generator=lambda: next(codes))
            info = await service.create_invite(alice, base_url=BASE_URL, now=T0)
        self.assertEqual(info.code, "FRESH333")

    async def test_collision_exhausted(self):
        alice = await self.add_user("alice")
        await self.add_invitation(alice, "TAKEN222", status="accepted")
        calls = []

        def always_taken() -> str:
            calls.append(1)
            return "TAKEN222"

        async with self.session() as session:
            service = InvitationService(session, max_attempts=10, code_generator=always_taken)
            with self.assertRaises(CodeGenerationExhausted):
                await service.create_invite(alice, base_url=BASE_URL, now=T0)

        # 首次生成 + 10 次重试
        self.assertEqual(len(calls), 11)


class ValidateInviteTests(DBTestCase):
    async def test_valid_pending(self):
        alice = await self.add_user("alice")
        await self.add_invitation(alice, "ABCD2345")

        async with self.session() as session:
            result = await InvitationService(session).validate_invite("abcd2345", now=T0)

        self.assertTrue(result.valid)
        self.assertIsNotNone(result.inviter)
        assert result.inviter is not None
        self.assertEqual(result.inviter.username, "alice")
        self.assertEqual(result.expires_at, T0 + timedelta(days=7))

    async def test_unknown_code(self):
        async with self.session() as session:
            result = await InvitationService(session).validate_invite("NOPE2345", now=T0)
        self.assertFalse(result.valid)
        self.assertIsNone(result.inviter)
        self.assertIsNone(result.expires_at)

    async def test_expired_exactly_at_expiry(self):
        alice = await self.add_user("alice")
        invitation_id = await self.add_invitation(alice, "ABCD2345", expires_at=T0)

        async with self.session() as session:
            result = await InvitationService(session).validate_invite("ABCD2345", now=T0)

        self.assertFalse(result.valid)
        self.assertIsNone(result.inviter)
        self.assertEqual(result.expires_at, T0)

        # 只读：不会顺手把状态改掉
        row = await self.get_row(Invitation, invitation_id)
        self.assertEqual(row.status, "pending")

    async def test_used_invitation(self):
        alice = await self.add_user("alice")
        await self.add_invitation(alice, "ABCD2345", status="accepted")
        async with self.session() as session:
            result = await InvitationService(session).validate_invite("ABCD2345", now=T0)
        self.assertFalse(result.valid)

    async def test_store_failure_reports_invalid(self):
        async with self.session() as session:
            with patch.object(session, "execute", side_effect=RuntimeError("db down")):
                with self.assertLogs("backend.app.services.invitation", level="ERROR"):
                    result = await InvitationService(session).validate_invite("ABCD2345", now=T0)
        self.assertFalse(result.valid)


class PendingInviteTests(DBTestCase):
    async def test_returns_most_recent_pending(self):
        alice = await self.add_user("alice")
        await self.add_invitation(alice, "OLDER222", status="cancelled", created_at=T0 - timedelta(days=1))
        await self.add_invitation(alice, "NEWER333", created_at=T0)

        async with self.session() as session:
            info = await InvitationService(session).get_pending_invite(alice, base_url=BASE_URL, now=T0)

        assert info is not None
        self.assertEqual(info.code, "NEWER333")
        self.assertEqual(info.url, f"{BASE_URL}/sign-up?code=NEWER333")

    async def test_none_without_invites(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            info = await InvitationService(session).get_pending_invite(alice, base_url=BASE_URL, now=T0)
        self.assertIsNone(info)

    async def test_lazy_expiry(self):
        alice = await self.add_user("alice")
        invitation_id = await self.add_invitation(alice, "ABCD2345", expires_at=T0 + timedelta(days=7))

        async with self.session() as session:
            info = await InvitationService(session).get_pending_invite(
                alice, base_url=BASE_URL, now=T0 + timedelta(days=8)
            )

        self.assertIsNone(info)
        row = await self.get_row(Invitation, invitation_id)
        self.assertEqual(row.status, "expired")

    async def test_store_failure_returns_none(self):
        alice = await self.add_user("alice")
        async with self.session() as session:
            with patch.object(session, "execute", side_effect=RuntimeError("db down")):
                with self.assertLogs("backend.app.services.invitation", level="ERROR"):
                    info = await InvitationService(session).get_pending_invite(alice, base_url=BASE_URL, now=T0)
        self.assertIsNone(info)


if __name__ == "__main__":
    unittest.main()
