"""
Unit tests for vault ledger operations.
"""

import pytest

from turfwar.core.exceptions import InvariantViolationError
from turfwar.modules.gang import vault
from turfwar.modules.shared.exceptions import InsufficientResourcesError, ValidationError


@pytest.mark.unit
class TestCredit:
    def test_credit_within_capacity(self, make_gang):
        gang = make_gang(vault=1_000)

        accepted = vault.credit(gang, 500)

        assert accepted == 500
        assert gang.vault == 1_500

    def test_credit_capped_at_capacity(self, make_gang):
        gang = make_gang(vault=9_500)

        accepted = vault.credit(gang, 2_000)

        assert accepted == 500
        assert gang.vault == 10_000

    def test_credit_into_full_vault_accepts_nothing(self, make_gang):
        gang = make_gang(vault=10_000)

        assert vault.credit(gang, 1_000) == 0
        assert gang.vault == 10_000

    def test_negative_credit_rejected(self, make_gang):
        with pytest.raises(ValidationError):
            vault.credit(make_gang(), -1)


@pytest.mark.unit
class TestDebit:
    def test_debit_exact_amount(self, make_gang):
        gang = make_gang(vault=800)

        assert vault.debit(gang, 300) == 300
        assert gang.vault == 500

    def test_overdraw_rejected(self, make_gang):
        gang = make_gang(vault=100)

        with pytest.raises(InsufficientResourcesError) as exc_info:
            vault.debit(gang, 101)

        assert exc_info.value.resource == "vault"
        assert gang.vault == 100


@pytest.mark.unit
class TestTransfer:
    def test_transfer_moves_only_what_fits(self, make_gang):
        source = make_gang(id=1, vault=5_000)
        destination = make_gang(id=2, vault=9_000)

        moved = vault.transfer(source, destination, 3_000)

        assert moved == 1_000
        assert source.vault == 4_000
        assert destination.vault == 10_000

    def test_transfer_conserves_total(self, make_gang):
        source = make_gang(id=1, vault=5_000)
        destination = make_gang(id=2, vault=0)

        vault.transfer(source, destination, 1_234)

        assert source.vault + destination.vault == 5_000


@pytest.mark.unit
class TestInvariant:
    def test_out_of_bounds_vault_detected(self, make_gang):
        gang = make_gang(vault=10_001)

        with pytest.raises(InvariantViolationError):
            vault.assert_invariant(gang)

    def test_capacity_follows_base_level(self, make_gang):
        assert vault.capacity(make_gang(base_level=3)) == 35_000
        assert vault.free_space(make_gang(base_level=3, vault=30_000)) == 5_000
