"""Identity store module.

Identity store interface, the GoTrue adapter and the in-memory mock.
"""

from app.providers.identity.base import (
    EnrolledFactor,
    Factor,
    FactorType,
    IdentityAccount,
    IdentitySession,
    IdentityStore,
)
from app.providers.identity.gotrue_adapter import GoTrueIdentityStore
from app.providers.identity.mock_adapter import MockIdentityStore

__all__ = [
    # Base types
    "EnrolledFactor",
    "Factor",
    "FactorType",
    "IdentityAccount",
    "IdentitySession",
    "IdentityStore",
    # Adapters
    "GoTrueIdentityStore",
    "MockIdentityStore",
]
