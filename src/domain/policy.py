from dataclasses import dataclass

from src.domain.entities import RoleType, UserProfile
from src.rules.models import RbacRules


@dataclass(frozen=True)
class Caller:
    """
    Verified identity of the requester plus its stored profile.

    The role always comes from the stored profile, never from anything the
    client sent. A subject without a stored profile has no role and
    is granted nothing.
    """

    subject_id: str
    profile: UserProfile | None = None

    @property
    def role(self) -> RoleType | None:
        return self.profile.role if self.profile else None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str | None:
        if self.profile and self.profile.name:
            return self.profile.name
        return None


class PolicyEngine:
    def __init__(self, rbac: RbacRules):
        self.rbac = rbac

    def check_permission(self, caller: Caller | None, action: str) -> bool:
        """
        Check if the caller's role is allowed to perform the action.

        Role entries may be exact actions, "*" or scoped wildcards
        ("users:*" matches "users:list").
        """
        if caller is None or caller.role is None:
            return False

        allowed_actions = self.rbac.roles.get(caller.role, [])
        if "*" in allowed_actions:
            return True
        if action in allowed_actions:
            return True

        if ":" in action:
            scope = action.split(":")[0]
            if f"{scope}:*" in allowed_actions:
                return True

        return False

    # --- Invites ---

    def can_create_invites(self, caller: Caller) -> bool:
        return self.check_permission(caller, "invites:create")

    # --- Messages ---

    def can_send_messages(self, caller: Caller) -> bool:
        return self.check_permission(caller, "messages:send")

    def can_read_all_messages(self, caller: Caller) -> bool:
        return self.check_permission(caller, "messages:read_all")

    def can_reply(self, caller: Caller) -> bool:
        return self.check_permission(caller, "messages:reply")

    def can_mark_read(self, caller: Caller) -> bool:
        return self.check_permission(caller, "messages:mark_read")

    # --- Profiles ---

    def can_list_users(self, caller: Caller) -> bool:
        return self.check_permission(caller, "users:list")

    def can_access_profile(self, caller: Caller, target_id: str) -> bool:
        if caller.subject_id == target_id and self.check_permission(caller, "profile:self"):
            return True
        return self.check_permission(caller, "users:update_any")

    def can_change_role(self, caller: Caller) -> bool:
        return self.check_permission(caller, "users:set_role")
