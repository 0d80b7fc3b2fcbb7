"""Tests for domain enumerations."""

from __future__ import annotations

from safeswap.domain.enums import CodePurpose, EscrowStatus, EventType, PartyRole


class TestEscrowStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {"PENDING", "ACTIVE", "COMPLETED", "DISPUTED", "CANCELLED", "EXPIRED"}
        actual = {s.value for s in EscrowStatus}
        assert actual == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(EscrowStatus.PENDING, str)
        assert EscrowStatus.PENDING == "PENDING"


class TestEventType:
    def test_every_mutation_has_an_event(self) -> None:
        # create + bind + wallet + 2 confirmation outcomes + dispute + settlement
        assert len(EventType) == 7

    def test_event_type_is_str_enum(self) -> None:
        assert isinstance(EventType.ESCROW_CREATED, str)


class TestCodePurpose:
    def test_purposes(self) -> None:
        assert CodePurpose.LOGIN == "LOGIN"
        assert CodePurpose.EMAIL_VERIFICATION == "EMAIL_VERIFICATION"


class TestPartyRole:
    def test_roles(self) -> None:
        assert {r.value for r in PartyRole} == {"CREATOR", "RECIPIENT"}
