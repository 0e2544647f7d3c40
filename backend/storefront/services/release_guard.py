"""Guard predicates applied when releasing a quote.

Each guard renders both a Python check against an already loaded row and the
equivalent SQL conditions for the conditional ``UPDATE``, so the two can never
drift apart.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from storefront.db.models import CheckoutQuote

ALREADY_USED = "already_used"
NOT_EXPIRED = "not_expired"


class ReleaseGuard(Enum):
    NONE = "none"
    UNUSED = "unused"
    EXPIRED = "expired"
    BOTH = "both"

    @classmethod
    def from_flags(cls, *, require_unused: bool = False, require_expired: bool = False) -> "ReleaseGuard":
        if require_unused and require_expired:
            return cls.BOTH
        if require_unused:
            return cls.UNUSED
        if require_expired:
            return cls.EXPIRED
        return cls.NONE

    @property
    def requires_unused(self) -> bool:
        return self in {ReleaseGuard.UNUSED, ReleaseGuard.BOTH}

    @property
    def requires_expired(self) -> bool:
        return self in {ReleaseGuard.EXPIRED, ReleaseGuard.BOTH}

    def rejection(
        self,
        *,
        used_at: datetime | None,
        expires_at: datetime,
        now: datetime,
    ) -> str | None:
        if self.requires_unused and used_at is not None:
            return ALREADY_USED
        if self.requires_expired and expires_at >= now:
            return NOT_EXPIRED
        return None

    def conditions(self, now: datetime) -> list:
        clauses = []
        if self.requires_unused:
            clauses.append(CheckoutQuote.used_at.is_(None))
        if self.requires_expired:
            clauses.append(CheckoutQuote.expires_at < now)
        return clauses
