from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import func, select

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from backend.app.models import Invitation, Relationship, User
from backend.app.services import PairingService
from backend.app.utils.errors import (
    AlreadyPaired,
    InvitationAlreadyUsed,
    InvitationExpired,
    InvitationNotFound,
    InviterAlreadyPaired,
    SelfInvite,
)
from backend.tests.support import T0, DBTestCase


class AcceptInviteTests(DBTestCase):
    async def test_accept_links_both_users(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        invitation_id = await self.add_invitation(alice, "ABCD2345")

        async with self.session() as session:
            relationship = await PairingService(session).accept_invite(bob, "abcd2345", now=T0)

        rel = await self.get_row(Relationship, relationship.id)
        self.assertEqual(rel.status, "active")
        self.assertEqual((rel.user1_id, rel.user2_id), (alice, bob))
        self.assertIsNone(rel.ended_at)

        invitation = await self.get_row(Invitation, invitation_id)
        self.assertEqual(invitation.status, "accepted")
        self.assertEqual(invitation.accepted_by, bob)
        self.assertEqual(invitation.relationship_id, rel.id)

        for uid in (alice, bob):
            user = await self.get_row(User, uid)
            self.assertEqual(user.current_relationship_id, rel.id)

    async def test_acceptor_already_paired_is_checked_first(self):
        bob = await self.add_user("bob")
        carol = await self.add_user("carol")
        await self.add_relationship(bob, carol)

        async with self.session() as session:
            # 邀请码不存在也先报 AlreadyPaired
            with self.assertRaises(AlreadyPaired):
                await PairingService(session).accept_invite(bob, "NOPE2345", now=T0)

    async def test_unknown_code(self):
        bob = await self.add_user("bob")
        async with self.session() as session:
            with self.assertRaises(InvitationNotFound):
                await PairingService(session).accept_invite(bob, "NOPE2345", now=T0)

    async def test_used_code(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        await self.add_invitation(alice, "ABCD2345", status="cancelled")
        async with self.session() as session:
            with self.assertRaises(InvitationAlreadyUsed):
                await PairingService(session).accept_invite(bob, "ABCD2345", now=T0)

    async def test_expired_code_is_marked(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        invitation_id = await self.add_invitation(alice, "ABCD2345", expires_at=T0)

        async with self.session() as session:
            with self.assertRaises(InvitationExpired):
                await PairingService(session).accept_invite(bob, "ABCD2345", now=T0)

        invitation = await self.get_row(Invitation, invitation_id)
        self.assertEqual(invitation.status, "expired")

        async with self.session() as session:
            with self.assertRaises(InvitationAlreadyUsed):
                await PairingService(session).accept_invite(bob, "ABCD2345", now=T0)

    async def test_self_invite(self):
        alice = await self.add_user("alice")
        await self.add_invitation(alice, "ABCD2345")
        async with self.session() as session:
            with self.assertRaises(SelfInvite):
                await PairingService(session).accept_invite(alice, "ABCD2345", now=T0)

    async def test_inviter_paired_since_issuing(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        carol = await self.add_user("carol")
        await self.add_invitation(alice, "ABCD2345")
        await self.add_relationship(alice, carol, status="pending_deletion", ended_at=T0)

        async with self.session() as session:
            with self.assertRaises(InviterAlreadyPaired):
                await PairingService(session).accept_invite(bob, "ABCD2345", now=T0)

    async def test_invitation_single_use(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        carol = await self.add_user("carol")
        await self.add_invitation(alice, "ABCD2345")

        async with self.session() as session:
            await PairingService(session).accept_invite(bob, "ABCD2345", now=T0)

        async with self.session() as session:
            with self.assertRaises(InvitationAlreadyUsed):
                await PairingService(session).accept_invite(carol, "ABCD2345", now=T0 + timedelta(minutes=1))

    async def test_failure_midway_rolls_back_everything(self):
        alice = await self.add_user("alice")
        bob = await self.add_user("bob")
        invitation_id = await self.add_invitation(alice, "ABCD2345")

        async with self.session() as session:
            with patch.object(
                PairingService,
                "_point_users_at",
                side_effect=RuntimeError("boom"),
            ):
                with self.assertRaises(RuntimeError):
                    await PairingService(session).accept_invite(bob, "ABCD2345", now=T0)

        async with self.session() as session:
            count = (await session.execute(select(func.count(Relationship.id)))).scalar_one()
        self.assertEqual(count, 0)

        invitation = await self.get_row(Invitation, invitation_id)
        self.assertEqual(invitation.status, "pending")
        self.assertIsNone(invitation.accepted_by)
        for uid in (alice, bob):
            user = await self.get_row(User, uid)
            self.assertIsNone(user.current_relationship_id)
