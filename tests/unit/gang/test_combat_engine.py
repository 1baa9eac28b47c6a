"""
Unit tests for CombatEngine.

Every draw is scripted through ScriptedRandom, in engine order:
success roll, lockpick breakage, then amounts.
"""

from datetime import timedelta

import pytest

from turfwar.core.database.base import utc_now
from turfwar.database.models import MemberStatus
from turfwar.modules.gang.combat_engine import (
    CombatEngine,
    dissolve_membership,
    ensure_can_act,
    ensure_rival,
    release_expired,
)
from turfwar.modules.shared.exceptions import PreconditionFailedError


@pytest.fixture
def engine_factory(mock_config):
    def _build(rng):
        return CombatEngine(mock_config, rng=rng)

    return _build


# ============================================================================
# RAID
# ============================================================================


@pytest.mark.unit
class TestRaid:
    def test_successful_raid_damages_and_steals(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, name="Vipers")
        defender = make_gang(id=2, name="Jackals", vault=10_000)
        rng = scripted_rng(randoms=[0.10], randints=[30], uniforms=[0.10])

        outcome = engine_factory(rng).resolve_raid(attacker, defender)

        assert outcome.success is True
        assert outcome.rate.rate == 50
        assert rng.randint_calls == [(12, 37)]
        assert outcome.damage == 30
        assert defender.base_hp == 220
        assert outcome.destroyed is False
        assert outcome.stolen == 1_000
        assert attacker.vault == 1_000
        assert defender.vault == 9_000
        assert attacker.total_earnings == 1_000
        assert (attacker.wins, attacker.raids, attacker.power) == (1, 1, 110)
        assert (defender.losses, defender.power) == (1, 95)

    def test_failed_raid_changes_only_power_and_record(
        self, engine_factory, scripted_rng, make_gang
    ):
        attacker = make_gang(id=1)
        defender = make_gang(id=2, vault=5_000)

        outcome = engine_factory(scripted_rng(randoms=[0.90])).resolve_raid(attacker, defender)

        assert outcome.success is False
        assert defender.base_hp == 250
        assert defender.vault == 5_000
        assert (attacker.losses, attacker.power) == (1, 97)
        assert (defender.wins, defender.power) == (1, 105)

    def test_raid_that_zeroes_hp_destroys_gang(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, vault=500)
        defender = make_gang(id=2, base_hp=20, vault=3_000)

        outcome = engine_factory(scripted_rng(randoms=[0.10], randints=[30])).resolve_raid(
            attacker, defender
        )

        assert outcome.destroyed is True
        assert outcome.hp_after == 0
        assert outcome.stolen == 3_000
        assert attacker.vault == 3_500
        assert attacker.power == 125

    def test_destroyed_vault_credit_capped_by_attacker_capacity(
        self, engine_factory, scripted_rng, make_gang
    ):
        attacker = make_gang(id=1, vault=9_000)
        defender = make_gang(id=2, base_hp=10, vault=5_000)

        outcome = engine_factory(scripted_rng(randoms=[0.10], randints=[20])).resolve_raid(
            attacker, defender
        )

        assert outcome.stolen == 1_000
        assert attacker.vault == 10_000

    def test_breach_charge_spent_even_on_failure(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, breach_charges=1)
        defender = make_gang(id=2)

        outcome = engine_factory(scripted_rng(randoms=[0.99])).resolve_raid(attacker, defender)

        assert outcome.breach_used is True
        assert outcome.rate.rate == 80
        assert attacker.breach_charges == 0

    def test_breach_charge_adds_flat_damage(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, breach_charges=1)
        defender = make_gang(id=2, base_level=8, base_hp=5_000, vault=0)

        outcome = engine_factory(
            scripted_rng(randoms=[0.10], randints=[300], uniforms=[0.05])
        ).resolve_raid(attacker, defender)

        assert outcome.damage == 400
        assert defender.base_hp == 4_600

    def test_walls_and_weapons_shift_rate(self, engine_factory, scripted_rng, make_gang):
        engine = engine_factory(scripted_rng())
        attacker = make_gang(id=1, weapons_level=3)
        defender = make_gang(id=2, walls_level=5)

        assert engine.raid_rate(attacker, defender, breach=False).rate == 50 + 10 - 20

    def test_power_loss_skipped_when_power_too_low(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, power=2)
        defender = make_gang(id=2)

        outcome = engine_factory(scripted_rng(randoms=[0.99])).resolve_raid(attacker, defender)

        assert attacker.power == 2
        assert outcome.attacker_power_delta == 0


# ============================================================================
# DESTRUCTION CASCADE
# ============================================================================


@pytest.mark.unit
class TestDissolveMembership:
    def test_members_leave_and_hostages_stay_held(self, make_member):
        now = utc_now()
        leader = make_member(id=1, user_id=10, role="leader", status="base")
        scout = make_member(id=2, user_id=11, status="outside")
        hostage = make_member(
            id=3,
            user_id=12,
            status="kidnapped",
            kidnapped_by=99,
            kidnapped_until=now + timedelta(hours=1),
        )

        released = dissolve_membership([leader, scout, hostage])

        assert released == [10, 11, 12]
        assert all(m.gang_id is None for m in (leader, scout, hostage))
        assert leader.role == "member"
        assert leader.status == MemberStatus.OUTSIDE
        assert scout.status == MemberStatus.OUTSIDE
        assert hostage.status == MemberStatus.KIDNAPPED
        assert hostage.kidnapped_by == 99


# ============================================================================
# ROB
# ============================================================================


@pytest.mark.unit
class TestRob:
    def test_empty_vault_cannot_be_robbed(self, engine_factory, scripted_rng, make_gang):
        with pytest.raises(PreconditionFailedError):
            engine_factory(scripted_rng()).resolve_rob(make_gang(id=1), make_gang(id=2), 0)

    def test_lockpick_can_break_on_success(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, basic_lockpick=True)
        defender = make_gang(id=2, vault=5_000)
        rng = scripted_rng(randoms=[0.50, 0.20], randints=[1_500])

        outcome = engine_factory(rng).resolve_rob(attacker, defender, 0)

        assert outcome.rate.rate == 70
        assert outcome.success is True
        assert outcome.lockpick == "basic_lockpick"
        assert outcome.lockpick_broke is True
        assert attacker.basic_lockpick is False
        assert rng.randint_calls == [(500, 2_000)]
        assert outcome.stolen == 1_500
        assert (attacker.vault, defender.vault) == (1_500, 3_500)
        assert attacker.robs == 1
        assert attacker.total_earnings == 1_500

    def test_lockpick_survives_roll_at_chance(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, basic_lockpick=True)
        defender = make_gang(id=2, vault=5_000)

        outcome = engine_factory(
            scripted_rng(randoms=[0.99, 0.25])
        ).resolve_rob(attacker, defender, 0)

        assert outcome.success is False
        assert outcome.lockpick_broke is False
        assert attacker.basic_lockpick is True

    def test_titan_lockpick_raises_steal_cap(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1, titan_lockpick=True)
        defender = make_gang(id=2, vault=10_000)
        rng = scripted_rng(randoms=[0.10, 0.90], randints=[4_000])

        outcome = engine_factory(rng).resolve_rob(attacker, defender, 0)

        assert rng.randint_calls == [(500, 4_000)]
        assert outcome.stolen == 4_000

    def test_small_vault_limits_amount(self, engine_factory, scripted_rng, make_gang):
        attacker = make_gang(id=1)
        defender = make_gang(id=2, vault=300)
        rng = scripted_rng(randoms=[0.10], randints=[300])

        outcome = engine_factory(rng).resolve_rob(attacker, defender, 0)

        assert rng.randint_calls == [(300, 300)]
        assert defender.vault == 0
        assert outcome.stolen == 300

    def test_guards_lower_rate_and_failure_costs_power(
        self, engine_factory, scripted_rng, make_gang
    ):
        attacker = make_gang(id=1)
        defender = make_gang(id=2, vault=5_000)

        outcome = engine_factory(scripted_rng(randoms=[0.50])).resolve_rob(attacker, defender, 3)

        assert outcome.rate.rate == 45
        assert outcome.success is False
        assert defender.vault == 5_000
        assert (attacker.power, defender.power) == (99, 102)


# ============================================================================
# KIDNAP
# ============================================================================


@pytest.mark.unit
class TestKidnap:
    def test_escort_guards_lower_rate(
        self, engine_factory, scripted_rng, make_gang, make_member
    ):
        now = utc_now()
        actor = make_member(id=1, user_id=100, gang_id=1, status="outside")
        attacker = make_gang(id=1)
        target = make_member(id=2, user_id=200, gang_id=2, status="outside")
        target_gang = make_gang(id=2, name="Jackals")

        outcome = engine_factory(
            scripted_rng(randoms=[0.54], choices=[2])
        ).resolve_kidnap(actor, attacker, target, target_gang, 3, now)

        assert outcome.rate.rate == 55
        assert outcome.success is True
        assert outcome.hours == 2
        assert target.status == MemberStatus.KIDNAPPED
        assert target.kidnapped_until == now + timedelta(hours=2)
        assert target.kidnapped_by == 100
        assert (attacker.kidnaps, attacker.hostages, attacker.power) == (1, 1, 105)

    def test_unaffiliated_target_is_easier(self, engine_factory, scripted_rng, make_member):
        engine = engine_factory(scripted_rng())
        loner = make_member(id=2, user_id=200, gang_id=None, status="outside")

        assert engine.kidnap_rate(loner, None, 0).rate == 90

    def test_failed_kidnap_leaves_target_free(
        self, engine_factory, scripted_rng, make_gang, make_member
    ):
        actor = make_member(id=1, user_id=100, gang_id=1, status="outside")
        attacker = make_gang(id=1)
        target = make_member(id=2, user_id=200, gang_id=None, status="outside")

        outcome = engine_factory(scripted_rng(randoms=[0.95])).resolve_kidnap(
            actor, attacker, target, None, 0, utc_now()
        )

        assert outcome.success is False
        assert target.status == MemberStatus.OUTSIDE
        assert attacker.power == 98

    def test_member_inside_base_is_safe(
        self, engine_factory, scripted_rng, make_gang, make_member
    ):
        actor = make_member(id=1, user_id=100, gang_id=1)
        target = make_member(id=2, user_id=200, gang_id=2, status="base")

        with pytest.raises(PreconditionFailedError):
            engine_factory(scripted_rng()).resolve_kidnap(
                actor, make_gang(id=1), target, make_gang(id=2), 0, utc_now()
            )

    def test_cannot_kidnap_own_gang(self, engine_factory, scripted_rng, make_gang, make_member):
        actor = make_member(id=1, user_id=100, gang_id=1)
        target = make_member(id=2, user_id=200, gang_id=1, status="outside")

        with pytest.raises(PreconditionFailedError):
            engine_factory(scripted_rng()).resolve_kidnap(
                actor, make_gang(id=1), target, make_gang(id=1), 0, utc_now()
            )


# ============================================================================
# PRECONDITIONS AND RELEASE
# ============================================================================


@pytest.mark.unit
class TestPreconditions:
    def test_hostage_cannot_act(self, make_member):
        member = make_member(status="kidnapped", kidnapped_until=utc_now() + timedelta(hours=1))

        with pytest.raises(PreconditionFailedError):
            ensure_can_act(member, "raid")

    def test_gangless_member_cannot_act(self, make_member):
        with pytest.raises(PreconditionFailedError):
            ensure_can_act(make_member(gang_id=None, status="outside"), "rob")

    def test_cannot_target_own_gang(self, make_gang):
        gang = make_gang(id=1)

        with pytest.raises(PreconditionFailedError):
            ensure_rival(gang, gang, "raid")


@pytest.mark.unit
class TestReleaseExpired:
    def test_expired_hostage_returns_to_base(self, make_member):
        now = utc_now()
        member = make_member(
            gang_id=3, status="kidnapped", kidnapped_by=5, kidnapped_until=now - timedelta(seconds=1)
        )

        assert release_expired(member, now) is True
        assert member.status == MemberStatus.BASE
        assert member.kidnapped_by is None
        assert member.kidnapped_until is None

    def test_gangless_hostage_released_outside(self, make_member):
        now = utc_now()
        member = make_member(
            gang_id=None, status="kidnapped", kidnapped_by=5, kidnapped_until=now
        )

        assert release_expired(member, now) is True
        assert member.status == MemberStatus.OUTSIDE

    def test_active_kidnap_untouched(self, make_member):
        now = utc_now()
        member = make_member(status="kidnapped", kidnapped_until=now + timedelta(minutes=5))

        assert release_expired(member, now) is False
        assert member.status == MemberStatus.KIDNAPPED
