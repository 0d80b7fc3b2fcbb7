"""Tests for the pure escrow lifecycle rules."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import pytest

from safeswap.domain.enums import EscrowStatus, PartyRole
from safeswap.domain.exceptions import (
    AlreadyCompletedError,
    AlreadyDisputedError,
    EscrowDisputedError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    MissingWalletError,
)
from safeswap.domain.lifecycle import (
    Caller,
    PartyResolution,
    canonical_amount,
    check_disputable,
    check_wallet_editable,
    derive_status,
    is_valid_wallet_address,
    missing_wallets,
    plan_confirmation,
    resolve_party,
)

CREATOR_ID = uuid.uuid4()
RECIPIENT_ID = uuid.uuid4()
WALLET_A = "0x" + "a1" * 20
WALLET_B = "0x" + "b2" * 20


@dataclass
class FakeEscrow:
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: str = "PENDING"
    creator_id: uuid.UUID = CREATOR_ID
    recipient_id: uuid.UUID | None = None
    recipient_email: str = "bob@example.com"
    creator_wallet: str | None = WALLET_A
    recipient_wallet: str | None = WALLET_B
    buyer_confirmed: bool = False
    seller_confirmed: bool = False
    disputed: bool = False


CREATOR = PartyResolution(roles=frozenset({PartyRole.CREATOR}))
RECIPIENT = PartyResolution(roles=frozenset({PartyRole.RECIPIENT}))
BOTH = PartyResolution(roles=frozenset({PartyRole.CREATOR, PartyRole.RECIPIENT}))


class TestResolveParty:
    def test_creator(self) -> None:
        res = resolve_party(FakeEscrow(), Caller(CREATOR_ID, "alice@example.com"))
        assert res.roles == {PartyRole.CREATOR}
        assert res.bind_recipient is False

    def test_unbound_recipient_matched_by_email_is_bound(self) -> None:
        res = resolve_party(FakeEscrow(), Caller(RECIPIENT_ID, "Bob@Example.com "))
        assert res.roles == {PartyRole.RECIPIENT}
        assert res.bind_recipient is True

    def test_bound_recipient_matched_by_id(self) -> None:
        escrow = FakeEscrow(recipient_id=RECIPIENT_ID)
        res = resolve_party(escrow, Caller(RECIPIENT_ID, "bob@example.com"))
        assert res.is_recipient
        assert res.bind_recipient is False

    def test_email_match_ignored_once_bound_to_someone_else(self) -> None:
        escrow = FakeEscrow(recipient_id=uuid.uuid4())
        with pytest.raises(ForbiddenError):
            resolve_party(escrow, Caller(RECIPIENT_ID, "bob@example.com"))

    def test_outsider_is_forbidden(self) -> None:
        with pytest.raises(ForbiddenError):
            resolve_party(FakeEscrow(), Caller(uuid.uuid4(), "mallory@example.com"))

    def test_creator_inviting_own_email_holds_both_roles(self) -> None:
        escrow = FakeEscrow(recipient_email="alice@example.com")
        res = resolve_party(escrow, Caller(CREATOR_ID, "alice@example.com"))
        assert res.roles == {PartyRole.CREATOR, PartyRole.RECIPIENT}
        assert res.bind_recipient is True
        assert res.primary_role == PartyRole.CREATOR


class TestDeriveStatus:
    @pytest.mark.parametrize(
        ("buyer", "seller", "disputed", "wallets", "expected"),
        [
            (False, False, False, True, EscrowStatus.PENDING),
            (True, False, False, True, EscrowStatus.ACTIVE),
            (False, True, False, False, EscrowStatus.ACTIVE),
            (True, True, False, True, EscrowStatus.COMPLETED),
            (True, True, False, False, EscrowStatus.ACTIVE),
            (True, True, True, True, EscrowStatus.DISPUTED),
            (False, False, True, False, EscrowStatus.DISPUTED),
        ],
    )
    def test_status_projection(
        self, buyer: bool, seller: bool, disputed: bool, wallets: bool, expected: EscrowStatus
    ) -> None:
        assert derive_status(buyer, seller, disputed, wallets) == expected


class TestPlanConfirmation:
    def test_first_confirmation_activates(self) -> None:
        plan = plan_confirmation(FakeEscrow(), CREATOR)
        assert plan.seller_confirmed is True
        assert plan.buyer_confirmed is False
        assert plan.status == EscrowStatus.ACTIVE
        assert plan.event == "record_confirmation"

    def test_second_confirmation_completes(self) -> None:
        escrow = FakeEscrow(status="ACTIVE", seller_confirmed=True)
        plan = plan_confirmation(escrow, RECIPIENT)
        assert plan.completed
        assert plan.event == "complete"

    def test_reconfirming_is_idempotent(self) -> None:
        escrow = FakeEscrow(status="ACTIVE", seller_confirmed=True)
        plan = plan_confirmation(escrow, CREATOR)
        assert plan.seller_confirmed is True
        assert plan.buyer_confirmed is False
        assert plan.status == EscrowStatus.ACTIVE

    def test_dual_role_confirms_both_sides(self) -> None:
        plan = plan_confirmation(FakeEscrow(), BOTH)
        assert plan.buyer_confirmed and plan.seller_confirmed
        assert plan.completed

    def test_missing_wallet_blocks_completion(self) -> None:
        escrow = FakeEscrow(status="ACTIVE", seller_confirmed=True, recipient_wallet=None)
        with pytest.raises(MissingWalletError) as exc_info:
            plan_confirmation(escrow, RECIPIENT)
        assert exc_info.value.missing == ["recipient"]

    def test_missing_wallet_does_not_block_first_confirmation(self) -> None:
        escrow = FakeEscrow(creator_wallet=None, recipient_wallet=None)
        plan = plan_confirmation(escrow, CREATOR)
        assert plan.status == EscrowStatus.ACTIVE

    def test_completed_is_rejected(self) -> None:
        with pytest.raises(AlreadyCompletedError):
            plan_confirmation(FakeEscrow(status="COMPLETED"), CREATOR)

    def test_disputed_is_rejected(self) -> None:
        with pytest.raises(EscrowDisputedError):
            plan_confirmation(FakeEscrow(status="DISPUTED", disputed=True), CREATOR)

    @pytest.mark.parametrize("status", ["CANCELLED", "EXPIRED"])
    def test_closed_is_rejected(self, status: str) -> None:
        with pytest.raises(InvalidStateTransitionError):
            plan_confirmation(FakeEscrow(status=status), CREATOR)


class TestGuards:
    def test_disputable_while_open(self) -> None:
        check_disputable(FakeEscrow(status="ACTIVE"))

    def test_dispute_twice(self) -> None:
        with pytest.raises(AlreadyDisputedError):
            check_disputable(FakeEscrow(status="DISPUTED", disputed=True))

    def test_dispute_after_completion(self) -> None:
        with pytest.raises(AlreadyCompletedError):
            check_disputable(FakeEscrow(status="COMPLETED"))

    def test_wallets_frozen_after_completion(self) -> None:
        with pytest.raises(AlreadyCompletedError):
            check_wallet_editable(FakeEscrow(status="COMPLETED"))

    def test_wallets_frozen_while_disputed(self) -> None:
        with pytest.raises(EscrowDisputedError):
            check_wallet_editable(FakeEscrow(status="DISPUTED", disputed=True))


class TestValueHelpers:
    def test_missing_wallets(self) -> None:
        assert missing_wallets(None, "") == ["creator", "recipient"]
        assert missing_wallets(WALLET_A, None) == ["recipient"]
        assert missing_wallets(WALLET_A, WALLET_B) == []

    @pytest.mark.parametrize(
        ("address", "valid"),
        [
            (WALLET_A, True),
            ("0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18", True),
            ("742d35Cc6634C0532925a3b844Bc9e7595f2bD18", False),
            ("0x742d35Cc6634C0532925a3b844Bc9e7595f2bD1", False),
            ("0xZZ2d35Cc6634C0532925a3b844Bc9e7595f2bD18", False),
            (None, False),
        ],
    )
    def test_wallet_format(self, address: str | None, valid: bool) -> None:
        assert is_valid_wallet_address(address) is valid

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("100.00", "100"), ("0.250", "0.25"), (" 42 ", "42"), ("1e3", "1000")],
    )
    def test_canonical_amount(self, raw: str, expected: str) -> None:
        assert canonical_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "-5", "abc", "NaN", "Infinity", ""])
    def test_rejected_amounts(self, raw: str) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            canonical_amount(raw)
        assert exc_info.value.field == "amount"
