"""Explicit per-request onboarding context.

Passed into every orchestrator, resolver and MFA call instead of reading
an ambient session.
"""

import uuid
from dataclasses import dataclass

from app.providers.identity.base import IdentitySession


@dataclass(frozen=True)
class OnboardingContext:
    """Who is onboarding in this request.

    Attributes:
        session_key: Opaque onboarding session key from the signed cookie;
            scopes the progress cache and MFA enrollment state.
        identity: Identity session from the Bearer token, once the identity
            step has run.
    """

    session_key: str
    identity: IdentitySession | None = None

    @property
    def user_id(self) -> uuid.UUID | None:
        return self.identity.user_id if self.identity else None
