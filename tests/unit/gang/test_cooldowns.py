"""
Unit tests for cooldown windows and the CooldownManager.
"""

from datetime import timedelta

import pytest

from turfwar.core.database.base import utc_now
from turfwar.core.logging.logger import get_logger
from turfwar.database.models import CooldownAction
from turfwar.database.models.gang import MemberCooldown
from turfwar.modules.gang.cooldowns import CooldownManager, remaining_seconds
from turfwar.modules.shared.exceptions import CooldownActiveError


@pytest.fixture
def manager(mock_config):
    return CooldownManager(mock_config, get_logger("tests.cooldowns"))


@pytest.mark.unit
class TestRemainingSeconds:
    def test_never_used_is_available(self):
        assert remaining_seconds(None, 30, utc_now()) == 0.0

    def test_counts_down_inside_window(self):
        now = utc_now()

        assert remaining_seconds(now - timedelta(seconds=10), 30, now) == pytest.approx(20.0)

    def test_zero_after_window(self):
        now = utc_now()

        assert remaining_seconds(now - timedelta(seconds=31), 30, now) == 0.0


@pytest.mark.unit
class TestWindows:
    def test_default_windows(self, manager):
        assert manager.window(CooldownAction.ROB) == 30
        assert manager.window(CooldownAction.KIDNAP) == 300
        assert manager.window(CooldownAction.REPAIR) == 120
        assert manager.window("raid") == 60

    def test_window_from_config(self, mock_config):
        mock_config.values["gangs.rob.cooldown_seconds"] = 5
        manager = CooldownManager(mock_config, get_logger("tests.cooldowns"))

        assert manager.window(CooldownAction.ROB) == 5


@pytest.mark.unit
class TestRaidCooldown:
    def test_raid_blocked_right_after_stamp(self, manager, make_gang):
        gang = make_gang()
        now = utc_now()
        manager.stamp_raid(gang, now)

        with pytest.raises(CooldownActiveError) as exc_info:
            manager.check_raid(gang, now + timedelta(seconds=30))

        assert exc_info.value.remaining_seconds == pytest.approx(30.0)

    def test_raid_allowed_after_window(self, manager, make_gang):
        now = utc_now()
        gang = make_gang(last_raid_at=now - timedelta(seconds=61))

        manager.check_raid(gang, now)


@pytest.mark.unit
@pytest.mark.asyncio
class TestMemberCooldowns:
    async def test_check_raises_while_window_open(self, manager, make_member, mocker):
        now = utc_now()
        row = MemberCooldown(member_id=1, action="rob", last_used_at=now - timedelta(seconds=10))
        mocker.patch.object(manager._repo, "find_one_where", mocker.AsyncMock(return_value=row))

        with pytest.raises(CooldownActiveError) as exc_info:
            await manager.check(mocker.AsyncMock(), make_member(), CooldownAction.ROB, now)

        assert exc_info.value.action == "rob"

    async def test_stamp_creates_row_on_first_use(self, manager, make_member, mocker):
        now = utc_now()
        session = mocker.MagicMock()
        mocker.patch.object(manager._repo, "find_one_where", mocker.AsyncMock(return_value=None))

        await manager.stamp(session, make_member(id=7), CooldownAction.KIDNAP, now)

        added = session.add.call_args.args[0]
        assert isinstance(added, MemberCooldown)
        assert added.member_id == 7
        assert added.action == "kidnap"
        assert added.last_used_at == now

    async def test_stamp_updates_existing_row(self, manager, make_member, mocker):
        now = utc_now()
        row = MemberCooldown(member_id=1, action="repair", last_used_at=now - timedelta(hours=1))
        mocker.patch.object(manager._repo, "find_one_where", mocker.AsyncMock(return_value=row))

        await manager.stamp(mocker.MagicMock(), make_member(), CooldownAction.REPAIR, now)

        assert row.last_used_at == now
