"""
Unit tests for the fixed-supply value ledger.

Coverage targets:
- One-time issuance
- Transfers, approvals and delegated transfers
- Signed permits
- Receiver hooks and transfer rollback
"""

import pytest

from tokenvest.core.constants import EVENT_ISSUED, EVENT_TRANSFER, UINT256_MAX, ZERO_ADDRESS
from tokenvest.core.contracts import FixedSupplyToken
from tokenvest.core.crypto_utils import (
    address_from_public_key,
    generate_secp256k1_keypair_hex,
    sign_message_hex,
)
from tokenvest.core.vesting_exceptions import (
    AlreadyIssuedError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidPermitSignatureError,
    LedgerError,
    PermitExpiredError,
    UnauthorizedError,
)


class TestIssuance:
    def test_issue_mints_full_supply_once(self, ledger, accounts):
        assert ledger.total_supply == 10_000_000
        assert ledger.balance_of(accounts.admin) == ledger.total_supply
        assert [e.event_type for e in ledger.events] == [EVENT_ISSUED, EVENT_TRANSFER]
        assert ledger.events[0].from_address == ZERO_ADDRESS

        with pytest.raises(AlreadyIssuedError):
            ledger.issue(accounts.admin, accounts.admin, 1)
        assert ledger.total_supply == 10_000_000

    def test_only_issuer_can_issue(self, clock, accounts):
        token = FixedSupplyToken(name="T", symbol="T", issuer=accounts.admin, time_provider=clock.now)
        with pytest.raises(UnauthorizedError):
            token.issue(accounts.alice, accounts.alice, 100)
        assert token.issued is False

    def test_issue_rejects_zero_supply(self, clock, accounts):
        token = FixedSupplyToken(name="T", symbol="T", issuer=accounts.admin, time_provider=clock.now)
        with pytest.raises(InvalidAmountError):
            token.issue(accounts.admin, accounts.admin, 0)

    def test_issuer_is_required(self):
        with pytest.raises(InvalidAddressError):
            FixedSupplyToken(name="T", symbol="T")


class TestTransfers:
    def test_transfer_moves_balance(self, ledger, accounts):
        assert ledger.transfer(accounts.admin, accounts.alice, 250) is True
        assert ledger.balance_of(accounts.alice) == 250
        assert ledger.balance_of(accounts.admin) == ledger.total_supply - 250

    def test_transfer_exceeding_balance_fails(self, ledger, accounts):
        with pytest.raises(InsufficientBalanceError):
            ledger.transfer(accounts.alice, accounts.bob, 1)

    @pytest.mark.parametrize("recipient", ["", ZERO_ADDRESS])
    def test_transfer_to_zero_address_fails(self, ledger, accounts, recipient):
        with pytest.raises(InvalidAddressError):
            ledger.transfer(accounts.admin, recipient, 1)

    @pytest.mark.parametrize("amount", [-1, 1.0, UINT256_MAX + 1])
    def test_invalid_amounts_fail(self, ledger, accounts, amount):
        with pytest.raises(InvalidAmountError):
            ledger.transfer(accounts.admin, accounts.alice, amount)

    def test_transfer_from_uses_allowance(self, ledger, accounts):
        ledger.approve(accounts.admin, accounts.bob, 100)

        ledger.transfer_from(accounts.bob, accounts.admin, accounts.carol, 60)

        assert ledger.balance_of(accounts.carol) == 60
        assert ledger.allowance(accounts.admin, accounts.bob) == 40
        with pytest.raises(InsufficientAllowanceError):
            ledger.transfer_from(accounts.bob, accounts.admin, accounts.carol, 41)

    def test_unlimited_allowance_is_not_decremented(self, ledger, accounts):
        ledger.approve(accounts.admin, accounts.bob, UINT256_MAX)
        ledger.transfer_from(accounts.bob, accounts.admin, accounts.carol, 500)
        assert ledger.allowance(accounts.admin, accounts.bob) == UINT256_MAX


class TestPermit:
    def _signed_permit(self, ledger, private_hex, owner, spender, value, deadline):
        digest = ledger.permit_digest(owner, spender, value, ledger.get_nonce(owner), deadline)
        return sign_message_hex(private_hex, digest)

    def test_valid_permit_sets_allowance(self, ledger, accounts, clock):
        private_hex, public_hex = generate_secp256k1_keypair_hex()
        owner = address_from_public_key(public_hex)
        deadline = clock.now() + 60
        signature = self._signed_permit(ledger, private_hex, owner, accounts.bob, 500, deadline)

        assert ledger.permit(owner, accounts.bob, 500, deadline, public_hex, signature) is True
        assert ledger.allowance(owner, accounts.bob) == 500
        assert ledger.get_nonce(owner) == 1

    def test_permit_cannot_be_replayed(self, ledger, accounts, clock):
        private_hex, public_hex = generate_secp256k1_keypair_hex()
        owner = address_from_public_key(public_hex)
        deadline = clock.now() + 60
        signature = self._signed_permit(ledger, private_hex, owner, accounts.bob, 500, deadline)
        ledger.permit(owner, accounts.bob, 500, deadline, public_hex, signature)

        with pytest.raises(InvalidPermitSignatureError):
            ledger.permit(owner, accounts.bob, 500, deadline, public_hex, signature)

    def test_expired_permit_is_rejected(self, ledger, accounts, clock):
        private_hex, public_hex = generate_secp256k1_keypair_hex()
        owner = address_from_public_key(public_hex)
        deadline = clock.now() - 1
        signature = self._signed_permit(ledger, private_hex, owner, accounts.bob, 500, deadline)

        with pytest.raises(PermitExpiredError):
            ledger.permit(owner, accounts.bob, 500, deadline, public_hex, signature)

    def test_permit_signed_by_another_key_is_rejected(self, ledger, accounts, clock):
        _, owner_public = generate_secp256k1_keypair_hex()
        attacker_private, _ = generate_secp256k1_keypair_hex()
        owner = address_from_public_key(owner_public)
        deadline = clock.now() + 60
        signature = self._signed_permit(ledger, attacker_private, owner, accounts.bob, 500, deadline)

        with pytest.raises(InvalidPermitSignatureError):
            ledger.permit(owner, accounts.bob, 500, deadline, owner_public, signature)
        assert ledger.allowance(owner, accounts.bob) == 0

    def test_public_key_must_match_owner(self, ledger, accounts, clock):
        private_hex, public_hex = generate_secp256k1_keypair_hex()
        owner = address_from_public_key(public_hex)
        deadline = clock.now() + 60
        signature = self._signed_permit(ledger, private_hex, owner, accounts.bob, 500, deadline)

        with pytest.raises(InvalidPermitSignatureError):
            ledger.permit(accounts.alice, accounts.bob, 500, deadline, public_hex, signature)


class TestReceiverHooks:
    def test_hook_sees_credit(self, ledger, accounts):
        seen = []
        ledger.register_receiver(accounts.alice, lambda sender, amount: seen.append((sender, amount)))

        ledger.transfer(accounts.admin, accounts.alice, 10)

        assert seen == [(accounts.admin, 10)]

    def test_failing_hook_rolls_back_transfer(self, ledger, accounts):
        def reject(sender, amount):
            raise RuntimeError("receiver refused")

        ledger.register_receiver(accounts.alice, reject)
        events_before = len(ledger.events)

        with pytest.raises(RuntimeError):
            ledger.transfer(accounts.admin, accounts.alice, 10)

        assert ledger.balance_of(accounts.alice) == 0
        assert ledger.balance_of(accounts.admin) == ledger.total_supply
        assert len(ledger.events) == events_before

        ledger.unregister_receiver(accounts.alice)
        ledger.transfer(accounts.admin, accounts.alice, 10)
        assert ledger.balance_of(accounts.alice) == 10

    def test_failing_hook_restores_spent_allowance(self, ledger, accounts):
        ledger.approve(accounts.admin, accounts.bob, 100)
        ledger.register_receiver(accounts.carol, lambda sender, amount: 1 / 0)

        with pytest.raises(ZeroDivisionError):
            ledger.transfer_from(accounts.bob, accounts.admin, accounts.carol, 60)

        assert ledger.allowance(accounts.admin, accounts.bob) == 100
        assert ledger.balance_of(accounts.carol) == 0

    def test_transfer_committed_inside_failing_hook_is_kept(self, ledger, accounts):
        ledger.transfer(accounts.admin, accounts.bob, 500)

        def forward_then_fail(sender, amount):
            ledger.transfer(accounts.bob, accounts.carol, 200)
            raise RuntimeError("receiver refused")

        ledger.register_receiver(accounts.alice, forward_then_fail)

        with pytest.raises(RuntimeError):
            ledger.transfer(accounts.admin, accounts.alice, 10)

        assert ledger.balance_of(accounts.alice) == 0
        assert ledger.balance_of(accounts.bob) == 300
        assert ledger.balance_of(accounts.carol) == 200
        assert ledger.balance_of(accounts.admin) == ledger.total_supply - 500
        transfers = [(e.from_address, e.to_address, e.value) for e in ledger.events if e.event_type == EVENT_TRANSFER]
        assert transfers[-1] == (accounts.bob, accounts.carol, 200)
        assert (accounts.admin, accounts.alice, 10) not in transfers


def test_ledger_errors_share_base_class():
    assert issubclass(InsufficientBalanceError, LedgerError)
    assert issubclass(InvalidAddressError, LedgerError)


def test_serialization_round_trip(ledger, accounts):
    ledger.transfer(accounts.admin, accounts.alice, 42)
    ledger.approve(accounts.alice, accounts.bob, 7)

    restored = FixedSupplyToken.from_dict(ledger.to_dict())

    assert restored.address == ledger.address
    assert restored.balance_of(accounts.alice) == 42
    assert restored.allowance(accounts.alice, accounts.bob) == 7
    with pytest.raises(AlreadyIssuedError):
        restored.issue(accounts.admin, accounts.admin, 1)
