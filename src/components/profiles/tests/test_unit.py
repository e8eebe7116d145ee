"""
Profiles component unit tests.
"""

from __future__ import annotations

import pytest

from src.adapters.memory_kv import InMemoryKVStore
from src.components.profiles import (
    GetProfileInput,
    ListProfilesInput,
    ProvisionProfileInput,
    UpdateProfileInput,
    run,
    run_get,
    run_list,
    run_provision,
    run_update,
)
from src.domain.entities import UserProfile
from src.domain.errors import ErrorCode
from src.domain.policy import Caller, PolicyEngine
from src.rules.models import RbacRules

# --- Fixtures ---


@pytest.fixture
def store() -> InMemoryKVStore:
    return InMemoryKVStore()


@pytest.fixture
def policy() -> PolicyEngine:
    return PolicyEngine(
        RbacRules(
            roles={
                "admin": ["users:*", "profile:self"],
                "user": ["messages:send", "profile:self"],
            }
        )
    )


@pytest.fixture
def admin() -> Caller:
    return Caller(subject_id="admin-1", profile=UserProfile(id="admin-1", role="admin"))


def _provision(store, subject_id="user-42", role="user", code="TEAM123", **seed):
    return run_provision(
        ProvisionProfileInput(subject_id=subject_id, role=role, invited_by_code=code, seed=seed),
        store,
    )


def _caller(store, subject_id: str) -> Caller:
    record = store.get(f"user:{subject_id}")
    return Caller(subject_id=subject_id, profile=UserProfile.model_validate(record) if record else None)


# --- Provision ---


class TestProvision:
    def test_builds_profile_with_defaults(self, store):
        result = _provision(store, name="Ada", email="ada@example.com", language="es")

        assert result.success
        stored = store.get("user:user-42")
        assert stored["id"] == "user-42"
        assert stored["role"] == "user"
        assert stored["invitedByCode"] == "TEAM123"
        assert stored["name"] == "Ada"
        assert stored["language"] == "es"
        assert stored["assignedTopics"] == []
        assert stored["progress"] == {}
        assert stored["onboardingComplete"] is False
        assert stored["points"] == 0
        assert stored["badges"] == []

    def test_seed_cannot_override_role_or_code(self, store):
        result = run_provision(
            ProvisionProfileInput(
                subject_id="user-42",
                role="user",
                invited_by_code="TEAM123",
                seed={"role": "admin", "invitedByCode": "X", "id": "someone-else"},
            ),
            store,
        )

        assert result.profile.role == "user"
        assert result.profile.invited_by_code == "TEAM123"

    def test_overwrites_existing_profile(self, store):
        _provision(store, name="First", points=50)
        _provision(store, name="Second")

        stored = store.get("user:user-42")
        assert stored["name"] == "Second"
        assert stored["points"] == 0

    def test_admin_role_grant(self, store):
        result = _provision(store, subject_id="boss", role="admin", code="ADMINCODE")

        assert result.profile.role == "admin"


# --- Get ---


class TestGet:
    def test_self_can_read(self, store, policy):
        _provision(store)

        result = run_get(GetProfileInput(caller=_caller(store, "user-42"), subject_id="user-42"), store, policy)

        assert result.success
        assert result.profile.id == "user-42"

    def test_other_user_forbidden(self, store, policy):
        _provision(store)
        _provision(store, subject_id="user-7")

        result = run_get(GetProfileInput(caller=_caller(store, "user-7"), subject_id="user-42"), store, policy)

        assert result.error_code == ErrorCode.FORBIDDEN

    def test_admin_can_read_anyone(self, store, policy, admin):
        _provision(store)

        assert run_get(GetProfileInput(caller=admin, subject_id="user-42"), store, policy).success

    def test_missing_profile(self, store, policy, admin):
        result = run_get(GetProfileInput(caller=admin, subject_id="ghost"), store, policy)

        assert result.error_code == ErrorCode.NOT_FOUND


# --- Update ---


class TestUpdate:
    def test_shallow_merge_keeps_other_fields(self, store, policy):
        _provision(store, name="Ada", progress={"topic-1": 50}, assignedTopics=["topic-1"])
        caller = _caller(store, "user-42")

        result = run_update(
            UpdateProfileInput(caller=caller, subject_id="user-42", fields={"onboardingComplete": True}),
            store,
            policy,
        )

        assert result.success
        stored = store.get("user:user-42")
        assert stored["onboardingComplete"] is True
        assert stored["name"] == "Ada"
        assert stored["progress"] == {"topic-1": 50}
        assert stored["assignedTopics"] == ["topic-1"]

    def test_nested_values_are_replaced_not_merged(self, store, policy):
        _provision(store, progress={"a": 1, "b": 2})
        caller = _caller(store, "user-42")

        run_update(
            UpdateProfileInput(caller=caller, subject_id="user-42", fields={"progress": {"c": 3}}),
            store,
            policy,
        )

        assert store.get("user:user-42")["progress"] == {"c": 3}

    def test_snake_case_keys_accepted(self, store, policy):
        _provision(store)
        caller = _caller(store, "user-42")

        run_update(
            UpdateProfileInput(caller=caller, subject_id="user-42", fields={"onboarding_complete": True}),
            store,
            policy,
        )

        stored = store.get("user:user-42")
        assert stored["onboardingComplete"] is True
        assert "onboarding_complete" not in stored

    def test_unknown_fields_are_kept(self, store, policy):
        _provision(store)
        caller = _caller(store, "user-42")

        run_update(
            UpdateProfileInput(caller=caller, subject_id="user-42", fields={"theme": "dark"}),
            store,
            policy,
        )

        assert store.get("user:user-42")["theme"] == "dark"

    def test_user_cannot_promote_self(self, store, policy):
        _provision(store)
        caller = _caller(store, "user-42")

        result = run_update(
            UpdateProfileInput(caller=caller, subject_id="user-42", fields={"role": "admin"}), store, policy
        )

        assert result.error_code == ErrorCode.FORBIDDEN
        assert store.get("user:user-42")["role"] == "user"

    def test_unchanged_role_is_allowed(self, store, policy):
        _provision(store)
        caller = _caller(store, "user-42")

        result = run_update(
            UpdateProfileInput(caller=caller, subject_id="user-42", fields={"role": "user", "name": "N"}),
            store,
            policy,
        )

        assert result.success

    def test_admin_can_change_role(self, store, policy, admin):
        _provision(store)

        result = run_update(
            UpdateProfileInput(caller=admin, subject_id="user-42", fields={"role": "admin"}), store, policy
        )

        assert result.success
        assert result.profile.role == "admin"

    @pytest.mark.parametrize("field,value", [("id", "other"), ("invitedByCode", "OTHER")])
    def test_immutable_fields(self, store, policy, admin, field, value):
        _provision(store)

        result = run_update(
            UpdateProfileInput(caller=admin, subject_id="user-42", fields={field: value}), store, policy
        )

        assert result.error_code == ErrorCode.VALIDATION
        assert store.get("user:user-42")["invitedByCode"] == "TEAM123"

    def test_invalid_value_rejected(self, store, policy):
        _provision(store)
        caller = _caller(store, "user-42")

        result = run_update(
            UpdateProfileInput(caller=caller, subject_id="user-42", fields={"points": "lots"}), store, policy
        )

        assert result.error_code == ErrorCode.VALIDATION
        assert store.get("user:user-42")["points"] == 0

    def test_other_user_forbidden(self, store, policy):
        _provision(store)
        _provision(store, subject_id="user-7")

        result = run_update(
            UpdateProfileInput(caller=_caller(store, "user-7"), subject_id="user-42", fields={"name": "x"}),
            store,
            policy,
        )

        assert result.error_code == ErrorCode.FORBIDDEN

    def test_missing_profile(self, store, policy, admin):
        result = run_update(UpdateProfileInput(caller=admin, subject_id="ghost", fields={}), store, policy)

        assert result.error_code == ErrorCode.NOT_FOUND


# --- List ---


def test_admin_lists_all_profiles(store, policy, admin):
    _provision(store, subject_id="a")
    _provision(store, subject_id="b")

    result = run_list(ListProfilesInput(caller=admin), store, policy)

    assert result.success
    assert {p.id for p in result.profiles} == {"a", "b"}


def test_user_cannot_list_profiles(store, policy):
    _provision(store, subject_id="a")

    result = run_list(ListProfilesInput(caller=_caller(store, "a")), store, policy)

    assert result.error_code == ErrorCode.FORBIDDEN
    assert result.profiles == []


def test_run_dispatches(store, policy, admin):
    run(ProvisionProfileInput(subject_id="d", role="user", invited_by_code="C0DE"), store=store)

    result = run(GetProfileInput(caller=admin, subject_id="d"), store=store, policy=policy)

    assert result.success
