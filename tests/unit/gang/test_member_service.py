"""
Unit tests for membership: invitations, joining, leaving, kicks and bans.

`_load_pair` and the repositories are patched; rows come from the
make_gang / make_member factories.
"""

from datetime import timedelta

import pytest

from turfwar.core.database.base import utc_now
from turfwar.core.logging.logger import get_logger
from turfwar.database.models import MemberStatus
from turfwar.database.models.gang import GangInvitation
from turfwar.modules.gang import MemberService
from turfwar.modules.shared.exceptions import (
    InsufficientResourcesError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)


@pytest.fixture
def service(mock_config, mock_event_bus):
    return MemberService(mock_config, mock_event_bus, get_logger("tests.MemberService"))


@pytest.fixture
def leader(make_member):
    return make_member(id=1, user_id=100, gang_id=1, role="leader")


def _pair(mocker, service, actor, gang, target):
    mocker.patch.object(service, "_load_pair", mocker.AsyncMock(return_value=(actor, gang, target)))
    mocker.patch.object(service._personnel, "release_escort", mocker.AsyncMock(return_value=0))


def _joining(mocker, service, member, gang, count=1, invitation=None):
    mocker.patch.object(service, "_load_actor", mocker.AsyncMock(return_value=member))
    mocker.patch.object(service, "_find_gang", mocker.AsyncMock(return_value=gang))
    mocker.patch.object(service._gangs, "get_for_update", mocker.AsyncMock(return_value=gang))
    mocker.patch.object(service._members, "count_gang", mocker.AsyncMock(return_value=count))
    mocker.patch.object(service._invitations, "find_pending", mocker.AsyncMock(return_value=invitation))
    return mocker.patch.object(service._invitations, "delete_for_invitee", mocker.AsyncMock())


# ============================================================================
# INVITATIONS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestInvite:
    async def test_leader_invites_free_agent(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        target = make_member(id=2, user_id=200, gang_id=None, status="outside")
        _pair(mocker, service, leader, make_gang(), target)
        mocker.patch.object(service._members, "count_gang", mocker.AsyncMock(return_value=1))
        mocker.patch.object(service._invitations, "find_any", mocker.AsyncMock(return_value=None))

        result = await service.invite(100, 200)

        assert result["invitee_id"] == 200
        assert result["inviter_id"] == 100
        assert result["expires_at"] - utc_now() > timedelta(hours=23)
        fake_transaction.add.assert_called_once()

    async def test_plain_member_cannot_invite(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        actor = make_member(role="member")
        _pair(mocker, service, actor, make_gang(), make_member(id=2, user_id=200, gang_id=None))

        with pytest.raises(PermissionDeniedError):
            await service.invite(100, 200)

    async def test_pending_invitation_not_duplicated(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        _pair(mocker, service, leader, make_gang(), make_member(id=2, user_id=200, gang_id=None))
        mocker.patch.object(service._members, "count_gang", mocker.AsyncMock(return_value=1))
        pending = GangInvitation(gang_id=1, invitee_id=200, inviter_id=100, expires_at=utc_now() + timedelta(hours=1))
        mocker.patch.object(service._invitations, "find_any", mocker.AsyncMock(return_value=pending))

        with pytest.raises(PreconditionFailedError) as exc_info:
            await service.invite(100, 200)

        assert exc_info.value.reason == "an invitation is already pending"

    async def test_member_of_another_gang_not_invited(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        _pair(mocker, service, leader, make_gang(), make_member(id=2, user_id=200, gang_id=5))

        with pytest.raises(PreconditionFailedError):
            await service.invite(100, 200)


@pytest.mark.unit
@pytest.mark.asyncio
class TestJoin:
    async def test_accepting_invitation_joins_gang(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        member = make_member(id=2, user_id=200, gang_id=None, status="outside")
        gang = make_gang(is_public=False)
        invitation = GangInvitation(gang_id=1, invitee_id=200, inviter_id=100, expires_at=utc_now())
        cleanup = _joining(mocker, service, member, gang, invitation=invitation)

        result = await service.accept_invite(200, "vipers")

        assert result == {"gang_id": 1, "gang_name": "Vipers", "user_id": 200}
        assert member.gang_id == 1
        assert member.role == "member"
        cleanup.assert_awaited_once_with(fake_transaction, 200)

    async def test_accept_without_invitation(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        member = make_member(id=2, user_id=200, gang_id=None)
        _joining(mocker, service, member, make_gang())

        with pytest.raises(NotFoundError):
            await service.accept_invite(200, "vipers")

        assert member.gang_id is None

    async def test_public_gang_joined_directly(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        member = make_member(id=2, user_id=200, gang_id=None)
        _joining(mocker, service, member, make_gang())

        await service.join_gang(200, "vipers")

        assert member.gang_id == 1

    async def test_invite_only_gang_refuses_join(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        _joining(mocker, service, make_member(gang_id=None), make_gang(require_approval=True))

        with pytest.raises(PreconditionFailedError):
            await service.join_gang(100, "vipers")

    async def test_full_gang_refuses_join(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        _joining(mocker, service, make_member(gang_id=None), make_gang(max_members=3), count=3)

        with pytest.raises(InsufficientResourcesError) as exc_info:
            await service.join_gang(100, "vipers")

        assert exc_info.value.resource == "member_slots"

    async def test_banned_user_refused(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        member = make_member(user_id=200, gang_id=None)
        _joining(mocker, service, member, make_gang(banned_ids=[200]))

        with pytest.raises(PreconditionFailedError):
            await service.join_gang(200, "vipers")

        assert member.gang_id is None

    async def test_hostage_cannot_join(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        _joining(mocker, service, make_member(gang_id=None, status="kidnapped"), make_gang())

        with pytest.raises(PreconditionFailedError):
            await service.join_gang(100, "vipers")


# ============================================================================
# LEAVING, KICKS AND BANS
# ============================================================================


@pytest.mark.unit
@pytest.mark.asyncio
class TestLeaveAndKick:
    async def test_leader_cannot_leave(
        self, mocker, fake_transaction, service, leader, make_gang
    ):
        mocker.patch.object(service, "_load_actor", mocker.AsyncMock(return_value=leader))
        mocker.patch.object(service, "_require_gang", mocker.AsyncMock(return_value=make_gang()))

        with pytest.raises(PreconditionFailedError):
            await service.leave_gang(100)

        assert leader.gang_id == 1

    async def test_member_leaves_with_escort(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        member = make_member(id=4, user_id=400, status="outside")
        mocker.patch.object(service, "_load_actor", mocker.AsyncMock(return_value=member))
        mocker.patch.object(service, "_require_gang", mocker.AsyncMock(return_value=make_gang()))
        mocker.patch.object(service._personnel, "release_escort", mocker.AsyncMock(return_value=2))

        result = await service.leave_gang(400)

        assert result["escort_returned"] == 2
        assert member.gang_id is None
        assert member.status == MemberStatus.OUTSIDE

    async def test_leader_kicks_member(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        target = make_member(id=2, user_id=200, gang_id=1, role="officer")
        _pair(mocker, service, leader, make_gang(), target)

        result = await service.kick(100, 200)

        assert result["kicked"] == 200
        assert target.gang_id is None
        assert target.role == "member"
        assert target.status == MemberStatus.OUTSIDE

    async def test_officer_cannot_kick(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        officer = make_member(role="officer")
        target = make_member(id=2, user_id=200, gang_id=1)
        _pair(mocker, service, officer, make_gang(), target)

        with pytest.raises(PermissionDeniedError):
            await service.kick(100, 200)

        assert target.gang_id == 1

    async def test_kick_outsider_refused(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        _pair(mocker, service, leader, make_gang(), make_member(id=2, user_id=200, gang_id=7))

        with pytest.raises(PreconditionFailedError):
            await service.kick(100, 200)


@pytest.mark.unit
@pytest.mark.asyncio
class TestBan:
    async def test_ban_removes_member_and_records_id(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        gang = make_gang(banned_ids=[])
        target = make_member(id=2, user_id=200, gang_id=1)
        _pair(mocker, service, leader, gang, target)
        mocker.patch.object(service._invitations, "find_any", mocker.AsyncMock(return_value=None))

        result = await service.ban(100, 200)

        assert result["removed_from_gang"] is True
        assert gang.banned_ids == [200]
        assert target.gang_id is None

    async def test_ban_drops_pending_invitation(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        gang = make_gang(banned_ids=[])
        _pair(mocker, service, leader, gang, make_member(id=2, user_id=200, gang_id=None))
        pending = GangInvitation(gang_id=1, invitee_id=200, inviter_id=100, expires_at=utc_now())
        mocker.patch.object(service._invitations, "find_any", mocker.AsyncMock(return_value=pending))
        delete = mocker.patch.object(service._invitations, "delete", mocker.AsyncMock())

        result = await service.ban(100, 200)

        assert result["removed_from_gang"] is False
        assert gang.banned_ids == [200]
        delete.assert_awaited_once_with(fake_transaction, pending)

    async def test_officer_cannot_ban_fellow_officer(
        self, mocker, fake_transaction, service, make_gang, make_member
    ):
        officer = make_member(role="officer")
        target = make_member(id=2, user_id=200, gang_id=1, role="officer")
        _pair(mocker, service, officer, make_gang(banned_ids=[]), target)
        mocker.patch.object(service._invitations, "find_any", mocker.AsyncMock(return_value=None))

        with pytest.raises(PermissionDeniedError):
            await service.ban(100, 200)

        assert target.gang_id == 1

    async def test_unban_unknown_user_refused(
        self, mocker, fake_transaction, service, leader, make_gang, make_member
    ):
        _pair(mocker, service, leader, make_gang(banned_ids=[]), make_member(id=2, user_id=200, gang_id=None))

        with pytest.raises(PreconditionFailedError):
            await service.unban(100, 200)
