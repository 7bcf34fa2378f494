"""
Effective permission resolution for a user in a server or channel.

Precedence, highest first:
1. Server owner gets everything
2. Any administrator role gets everything
3. Union of the base grants of every assigned role
4. Channel overrides targeting one of those roles: allow, then deny wins
5. Channel overrides targeting the user: allow, then deny wins

Role position does not take part in the merge; it only matters for
role management checks (see can_manage_role).
"""
from typing import Iterable, Optional, Sequence

from .constants import Permission
from .overrides import ChannelOverride, RoleTarget, UserTarget
from .roles import RoleGrants

EffectivePermissions = dict[Permission, bool]


def all_granted() -> EffectivePermissions:
    return {perm: True for perm in Permission}


def none_granted() -> EffectivePermissions:
    return {perm: False for perm in Permission}


def to_camel_dict(effective: EffectivePermissions) -> dict[str, bool]:
    """Render with the wire names, e.g. {"readMessages": True, ...}."""
    return {perm.value: bool(effective.get(perm, False)) for perm in Permission}


def _layer(
    granted: frozenset[Permission],
    overrides: Iterable[ChannelOverride],
) -> frozenset[Permission]:
    allow: set[Permission] = set()
    deny: set[Permission] = set()
    for override in overrides:
        allow |= override.allowed
        deny |= override.denied
    return (granted | allow) - deny


class PermissionService:
    """Resolve effective permissions for a user in a given context."""

    @staticmethod
    def get_effective_permissions(
        roles: Sequence[RoleGrants] = (),
        overrides: Sequence[ChannelOverride] = (),
        is_owner: bool = False,
        *,
        user_id: Optional[int] = None,
        include_admin_bypass: bool = True,
    ) -> EffectivePermissions:
        """
        Compute the permission map for one user.

        `roles` are the roles assigned to the user on the server, and
        `overrides` the channel overrides that apply to the channel. Role
        overrides for roles not in `roles` are skipped, as are user overrides
        for another user when `user_id` is given.

        `include_admin_bypass=False` is for callers that need the literal
        grants, for example a role editor previewing what a set of roles and
        overrides hands out. The administrator bit is then reported as a
        plain flag instead of expanding to every permission. Owners are
        always granted everything. Access checks keep the default.
        """
        if is_owner:
            return all_granted()

        if include_admin_bypass and any(role.administrator for role in roles):
            return all_granted()

        granted: frozenset[Permission] = frozenset()
        for role in roles:
            granted |= role.grants

        role_ids = {role.id for role in roles}
        role_overrides = [
            o for o in overrides
            if isinstance(o.target, RoleTarget) and o.target.role_id in role_ids
        ]
        user_overrides = [
            o for o in overrides
            if isinstance(o.target, UserTarget)
            and (user_id is None or o.target.user_id == user_id)
        ]

        granted = _layer(granted, role_overrides)
        granted = _layer(granted, user_overrides)

        # An override can hand out administrator too; it still means everything
        if include_admin_bypass and Permission.ADMINISTRATOR in granted:
            return all_granted()

        return {perm: perm in granted for perm in Permission}

    @staticmethod
    def has_permission(permission: Permission, effective: EffectivePermissions) -> bool:
        """Administrator bypasses all checks."""
        if effective.get(Permission.ADMINISTRATOR, False):
            return True
        return bool(effective.get(Permission(permission), False))

    @staticmethod
    def calculate_role_hierarchy(roles: Iterable[RoleGrants]) -> list[RoleGrants]:
        """Roles sorted by position, highest first."""
        return sorted(roles, key=lambda role: role.position, reverse=True)

    def get_highest_role(self, roles: Iterable[RoleGrants]) -> Optional[RoleGrants]:
        ordered = self.calculate_role_hierarchy(roles)
        return ordered[0] if ordered else None

    def can_manage_role(
        self,
        user_roles: Sequence[RoleGrants],
        target_role: RoleGrants,
        is_owner: bool = False,
    ) -> bool:
        """
        Owners manage every role. Administrators manage every role except
        other administrator roles. Anyone else needs manageRoles and a
        highest role strictly above the target.
        """
        if is_owner:
            return True

        if any(role.administrator for role in user_roles) and not target_role.administrator:
            return True

        if not any(role.grants_permission(Permission.MANAGE_ROLES) for role in user_roles):
            return False

        highest = self.get_highest_role(user_roles)
        if highest is None:
            return False

        return highest.position > target_role.position

    @staticmethod
    def missing_grants(
        grants: Iterable[Permission],
        effective: EffectivePermissions,
    ) -> list[Permission]:
        """
        Kinds in `grants` the holder of `effective` does not have, in
        catalogue order. Nobody can hand out a permission they lack, so
        `administrator` is only grantable by owners and administrators.
        """
        if effective.get(Permission.ADMINISTRATOR, False):
            return []
        wanted = set(grants)
        return [perm for perm in Permission if perm in wanted and not effective.get(perm, False)]


permission_service = PermissionService()
