"""
Invite component unit tests.

Tests for invite validation, creation and redemption.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from src.adapters.demo_codes import DemoCodeAllowList
from src.adapters.memory_kv import InMemoryKVStore
from src.components.invite import (
    CreateInviteInput,
    RebindInviteInput,
    RedeemInviteInput,
    ReleaseInviteInput,
    ValidateInviteInput,
    run,
    run_create,
    run_rebind,
    run_redeem,
    run_release,
    run_validate,
)
from src.domain.entities import InviteCode, UserProfile, invite_key
from src.domain.errors import ErrorCode
from src.domain.policy import Caller, PolicyEngine
from src.rules.models import InviteRules, RbacRules

# --- Mock Implementations ---


class MockTimePort:
    """Mock time port for deterministic testing."""

    def __init__(self, fixed_time: datetime | None = None) -> None:
        self._time = fixed_time or datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self._time

    def advance(self, delta: timedelta) -> None:
        self._time = self._time + delta


# --- Fixtures ---


@pytest.fixture
def store() -> InMemoryKVStore:
    return InMemoryKVStore()


@pytest.fixture
def time_port() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def fallback() -> DemoCodeAllowList:
    return DemoCodeAllowList(["WELCOME2024", "FAITH777"])


@pytest.fixture
def no_fallback() -> DemoCodeAllowList:
    return DemoCodeAllowList([])


@pytest.fixture
def rules() -> InviteRules:
    return InviteRules(default_expiry_days=7, max_expiry_days=90, generated_code_length=8)


@pytest.fixture
def policy() -> PolicyEngine:
    return PolicyEngine(
        RbacRules(
            roles={
                "admin": ["invites:create", "users:*"],
                "user": ["messages:send", "profile:self"],
            }
        )
    )


@pytest.fixture
def admin() -> Caller:
    return Caller(subject_id="admin-1", profile=UserProfile(id="admin-1", role="admin"))


@pytest.fixture
def regular_user() -> Caller:
    return Caller(subject_id="user-1", profile=UserProfile(id="user-1", role="user"))


def _seed(store: InMemoryKVStore, **fields) -> InviteCode:
    invite = InviteCode(
        code=fields.pop("code", "CODE1"),
        issued_by=fields.pop("issued_by", "admin-1"),
        expires_at=fields.pop("expires_at", datetime(2024, 7, 1, tzinfo=UTC)),
        **fields,
    )
    store.set(invite_key(invite.code), invite.to_record())
    return invite


# --- Create ---


class TestCreate:
    def test_admin_creates_code(self, store, policy, time_port, rules, admin):
        inp = CreateInviteInput(caller=admin, code="team123", kind="multi", expiry_days=7)
        result = run_create(inp, store, policy, time_port, rules)

        assert result.success
        invite = result.invite
        assert invite.code == "TEAM123"
        assert invite.kind == "multi"
        assert invite.is_active is True
        assert invite.used_by == []
        assert invite.issued_by == "admin-1"
        assert invite.expires_at == time_port.now_utc() + timedelta(days=7)
        assert store.get("invite:TEAM123")["type"] == "multi"

    def test_regular_user_is_forbidden(self, store, policy, time_port, rules, regular_user):
        result = run_create(CreateInviteInput(caller=regular_user, code="NOPE1"), store, policy, time_port, rules)

        assert not result.success
        assert result.error_code == ErrorCode.FORBIDDEN
        assert store.get("invite:NOPE1") is None

    def test_generates_code_when_missing(self, store, policy, time_port, rules, admin):
        result = run_create(CreateInviteInput(caller=admin), store, policy, time_port, rules)

        assert result.success
        assert len(result.invite.code) == 8
        assert result.invite.code == result.invite.code.upper()
        assert store.get(invite_key(result.invite.code)) is not None

    def test_default_expiry(self, store, policy, time_port, rules, admin):
        result = run_create(CreateInviteInput(caller=admin, code="DEF01"), store, policy, time_port, rules)

        assert result.invite.expires_at == time_port.now_utc() + timedelta(days=7)

    @pytest.mark.parametrize("days", [0, -1, 91])
    def test_rejects_out_of_range_expiry(self, store, policy, time_port, rules, admin, days):
        result = run_create(
            CreateInviteInput(caller=admin, code="BAD01", expiry_days=days), store, policy, time_port, rules
        )

        assert not result.success
        assert result.error_code == ErrorCode.VALIDATION

    def test_rejects_malformed_code(self, store, policy, time_port, rules, admin):
        result = run_create(CreateInviteInput(caller=admin, code="a b!"), store, policy, time_port, rules)

        assert not result.success
        assert result.error_code == ErrorCode.VALIDATION

    def test_existing_code_is_overwritten(self, store, policy, time_port, rules, admin):
        _seed(store, code="DUP01", kind="single", used_by=["someone"], is_active=False)

        result = run_create(CreateInviteInput(caller=admin, code="DUP01", kind="multi"), store, policy, time_port, rules)

        assert result.success
        stored = InviteCode.model_validate(store.get("invite:DUP01"))
        assert stored.kind == "multi"
        assert stored.used_by == []
        assert stored.is_active


# --- Validate ---


class TestValidate:
    def test_valid_code_normalized(self, store, fallback, time_port):
        _seed(store, code="TEAM123", kind="multi")

        result = run_validate(ValidateInviteInput(code="team123"), store, fallback, time_port)

        assert result.valid
        assert result.invite.code == "TEAM123"
        assert not result.virtual

    def test_unknown_code(self, store, no_fallback, time_port):
        result = run_validate(ValidateInviteInput(code="MISSING"), store, no_fallback, time_port)

        assert not result.valid
        assert result.error_code == ErrorCode.INVITE_INVALID
        assert result.invite is None

    def test_inactive_code(self, store, fallback, time_port):
        _seed(store, code="OFF01", is_active=False)

        result = run_validate(ValidateInviteInput(code="OFF01"), store, fallback, time_port)

        assert not result.valid
        assert result.reason == "inactive"
        assert result.error_code == ErrorCode.INVITE_INVALID

    def test_used_single_code(self, store, fallback, time_port):
        _seed(store, code="ONCE1", kind="single", used_by=["u1"], is_active=False)

        result = run_validate(ValidateInviteInput(code="ONCE1"), store, fallback, time_port)

        assert not result.valid
        assert result.reason == "already used"
        assert result.error_code == ErrorCode.INVITE_EXHAUSTED

    def test_expiry_boundary(self, store, fallback, time_port):
        now = time_port.now_utc()
        _seed(store, code="PAST1", expires_at=now - timedelta(seconds=1))
        _seed(store, code="SOON1", expires_at=now + timedelta(seconds=1))

        expired = run_validate(ValidateInviteInput(code="PAST1"), store, fallback, time_port)
        fresh = run_validate(ValidateInviteInput(code="SOON1"), store, fallback, time_port)

        assert not expired.valid
        assert expired.error_code == ErrorCode.INVITE_EXPIRED
        assert fresh.valid

    def test_demo_code_is_virtual(self, store, fallback, time_port):
        result = run_validate(ValidateInviteInput(code="welcome2024"), store, fallback, time_port)

        assert result.valid
        assert result.virtual
        assert result.invite.kind == "multi"
        assert result.invite.issued_by == "system"
        assert result.invite.expires_at == time_port.now_utc() + timedelta(days=30)
        assert store.get("invite:WELCOME2024") is None

    def test_stored_record_shadows_demo_code(self, store, fallback, time_port):
        _seed(store, code="FAITH777", is_active=False)

        result = run_validate(ValidateInviteInput(code="FAITH777"), store, fallback, time_port)

        assert not result.valid

    def test_validate_never_writes(self, store, fallback, time_port):
        _seed(store, code="RO001", kind="single")
        before = store.get_versioned("invite:RO001")

        for _ in range(5):
            run_validate(ValidateInviteInput(code="RO001"), store, fallback, time_port)

        assert store.get_versioned("invite:RO001") == before


# --- Redeem ---


class TestRedeem:
    def test_single_use_round_trip(self, store, policy, fallback, time_port, rules, admin):
        run_create(CreateInviteInput(caller=admin, code="XONE", kind="single"), store, policy, time_port, rules)

        first = run_redeem(RedeemInviteInput(code="XONE", subject_id="a"), store, fallback, time_port)
        second = run_redeem(RedeemInviteInput(code="XONE", subject_id="b"), store, fallback, time_port)

        assert first.success
        assert first.invite.used_by == ["a"]
        assert first.invite.is_active is False
        assert not second.success
        assert second.error_code == ErrorCode.INVITE_EXHAUSTED

    def test_multi_use_accepts_many_subjects(self, store, fallback, time_port):
        _seed(store, code="MANY1", kind="multi")

        for i in range(10):
            result = run_redeem(RedeemInviteInput(code="many1", subject_id=f"s{i}"), store, fallback, time_port)
            assert result.success

        stored = InviteCode.model_validate(store.get("invite:MANY1"))
        assert stored.used_by == [f"s{i}" for i in range(10)]
        assert stored.is_active

    def test_multi_use_same_subject_not_duplicated(self, store, fallback, time_port):
        _seed(store, code="MANY2", kind="multi")

        run_redeem(RedeemInviteInput(code="MANY2", subject_id="s1"), store, fallback, time_port)
        run_redeem(RedeemInviteInput(code="MANY2", subject_id="s1"), store, fallback, time_port)

        assert store.get("invite:MANY2")["usedBy"] == ["s1"]

    def test_multi_use_stops_after_expiry(self, store, fallback, time_port):
        _seed(store, code="MANY3", kind="multi", expires_at=time_port.now_utc() + timedelta(hours=1))

        assert run_redeem(RedeemInviteInput(code="MANY3", subject_id="s1"), store, fallback, time_port).success
        time_port.advance(timedelta(hours=2))
        late = run_redeem(RedeemInviteInput(code="MANY3", subject_id="s2"), store, fallback, time_port)

        assert not late.success
        assert late.error_code == ErrorCode.INVITE_EXPIRED
        assert store.get("invite:MANY3")["usedBy"] == ["s1"]

    def test_unknown_code(self, store, no_fallback, time_port):
        result = run_redeem(RedeemInviteInput(code="NOPE9", subject_id="s1"), store, no_fallback, time_port)

        assert not result.success
        assert result.error_code == ErrorCode.INVITE_INVALID

    def test_demo_code_redeemed_without_write(self, store, fallback, time_port):
        for subject in ("a", "b", "c"):
            result = run_redeem(RedeemInviteInput(code="WELCOME2024", subject_id=subject), store, fallback, time_port)
            assert result.success
            assert result.virtual
            assert result.invite.used_by == [subject]

        assert store.get("invite:WELCOME2024") is None

    def test_concurrent_single_use_has_one_winner(self, store, fallback, time_port):
        _seed(store, code="RACE1", kind="single")

        def attempt(i: int):
            return run_redeem(RedeemInviteInput(code="RACE1", subject_id=f"s{i}"), store, fallback, time_port)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(attempt, range(32)))

        winners = [r for r in results if r.success]
        assert len(winners) == 1
        assert all(r.error_code == ErrorCode.INVITE_EXHAUSTED for r in results if not r.success)
        assert len(store.get("invite:RACE1")["usedBy"]) == 1


# --- Rebind / Release ---


class TestCompensation:
    def test_rebind_replaces_provisional_subject(self, store, fallback, time_port):
        _seed(store, code="BIND1", kind="single")
        run_redeem(RedeemInviteInput(code="BIND1", subject_id="pending-1"), store, fallback, time_port)

        result = run_rebind(RebindInviteInput(code="BIND1", from_subject_id="pending-1", to_subject_id="real"), store)

        assert result.success
        assert result.invite.used_by == ["real"]
        assert result.invite.is_active is False

    def test_release_reopens_single_use(self, store, fallback, time_port):
        _seed(store, code="BACK1", kind="single")
        run_redeem(RedeemInviteInput(code="BACK1", subject_id="pending-1"), store, fallback, time_port)

        result = run_release(ReleaseInviteInput(code="BACK1", subject_id="pending-1"), store)

        assert result.success
        assert result.invite.used_by == []
        assert result.invite.is_active is True
        again = run_redeem(RedeemInviteInput(code="BACK1", subject_id="other"), store, fallback, time_port)
        assert again.success

    def test_release_multi_use_keeps_others(self, store, fallback, time_port):
        _seed(store, code="BACK2", kind="multi", used_by=["keep"])
        run_redeem(RedeemInviteInput(code="BACK2", subject_id="drop"), store, fallback, time_port)

        result = run_release(ReleaseInviteInput(code="BACK2", subject_id="drop"), store)

        assert result.invite.used_by == ["keep"]

    def test_release_of_fallback_code_is_noop(self, store):
        result = run_release(ReleaseInviteInput(code="WELCOME2024", subject_id="x"), store)

        assert result.success
        assert result.invite is None


# --- Dispatcher ---


def test_run_dispatches_by_input_type(store, fallback, time_port, policy, rules, admin):
    created = run(
        CreateInviteInput(caller=admin, code="DISP1", kind="multi"),
        store=store,
        policy=policy,
        time=time_port,
        rules=rules,
    )
    validated = run(ValidateInviteInput(code="DISP1"), store=store, fallback=fallback, time=time_port)

    assert created.success
    assert validated.valid


def test_run_rejects_unknown_input(store):
    with pytest.raises(ValueError):
        run("not an input", store=store)  # type: ignore[arg-type]
