"""Application services — use case orchestration."""

from safeswap.services.auth_service import AuthService
from safeswap.services.effects import DeferredEffects
from safeswap.services.escrow_service import EscrowService
from safeswap.services.notification_service import NotificationService
from safeswap.services.settlement_service import SettlementService

__all__ = [
    "AuthService",
    "DeferredEffects",
    "EscrowService",
    "NotificationService",
    "SettlementService",
]
