"""
Demo invite code allow-list.

Consulted by the invite component only when the store has no record for a
code. Matching codes yield a virtual multi-use invite that is never
persisted, so they stay reusable forever. Built from ``invites.demo_codes``
in rules.yaml; a disabled config yields an empty allow-list.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from src.domain.entities import InviteCode, RoleType, normalize_code
from src.rules.models import DemoCodeRules


class DemoCodeAllowList:
    def __init__(
        self,
        codes: Iterable[str],
        *,
        validity_days: int = 30,
        role: RoleType = "user",
        issued_by: str = "system",
    ) -> None:
        self._codes = frozenset(normalize_code(c) for c in codes)
        self._validity = timedelta(days=validity_days)
        self._role: RoleType = role
        self._issued_by = issued_by

    @classmethod
    def from_rules(cls, rules: DemoCodeRules) -> DemoCodeAllowList:
        if not rules.enabled:
            return cls([])
        return cls(
            rules.codes,
            validity_days=rules.validity_days,
            role=rules.role,
            issued_by=rules.issued_by,
        )

    def lookup(self, code: str, now: datetime) -> InviteCode | None:
        code = normalize_code(code)
        if code not in self._codes:
            return None
        return InviteCode(
            code=code,
            kind="multi",
            role=self._role,
            expires_at=now + self._validity,
            issued_by=self._issued_by,
            is_active=True,
            used_by=[],
        )

    def __len__(self) -> int:
        return len(self._codes)
