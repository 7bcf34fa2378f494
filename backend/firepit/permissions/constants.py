from enum import Enum
from collections.abc import Iterable


class Permission(str, Enum):
    READ_MESSAGES = "readMessages"
    SEND_MESSAGES = "sendMessages"
    MANAGE_MESSAGES = "manageMessages"
    MANAGE_CHANNELS = "manageChannels"
    MANAGE_ROLES = "manageRoles"
    MANAGE_SERVER = "manageServer"
    MENTION_EVERYONE = "mentionEveryone"
    ADMINISTRATOR = "administrator"


# Role model column holding each kind's base grant
ROLE_COLUMNS: dict[Permission, str] = {
    Permission.READ_MESSAGES: "read_messages",
    Permission.SEND_MESSAGES: "send_messages",
    Permission.MANAGE_MESSAGES: "manage_messages",
    Permission.MANAGE_CHANNELS: "manage_channels",
    Permission.MANAGE_ROLES: "manage_roles",
    Permission.MANAGE_SERVER: "manage_server",
    Permission.MENTION_EVERYONE: "mention_everyone",
    Permission.ADMINISTRATOR: "administrator",
}

PERMISSION_DESCRIPTIONS: dict[Permission, str] = {
    Permission.READ_MESSAGES: "View channels and read message history",
    Permission.SEND_MESSAGES: "Send messages in channels",
    Permission.MANAGE_MESSAGES: "Delete and edit messages from other users",
    Permission.MANAGE_CHANNELS: "Create, edit, and delete channels",
    Permission.MANAGE_ROLES: "Create and modify roles below their highest role",
    Permission.MANAGE_SERVER: "Change server name and other server settings",
    Permission.MENTION_EVERYONE: "Use @everyone and @here mentions",
    Permission.ADMINISTRATOR: "All permissions and bypass channel overrides",
}


def all_permissions() -> list[Permission]:
    return list(Permission)


def is_valid_permission(value) -> bool:
    """True if `value` names one of the defined permission kinds."""
    if isinstance(value, Permission):
        return True
    if not isinstance(value, str):
        return False
    return value in Permission._value2member_map_


def get_permission_description(permission: Permission) -> str:
    return PERMISSION_DESCRIPTIONS[Permission(permission)]


def parse_permissions(values: Iterable | None) -> frozenset[Permission]:
    """
    Convert raw permission names into Permission members.
    Unknown or non-string entries are dropped, never raised on.
    """
    if not values or isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        return frozenset()
    return frozenset(Permission(v) for v in values if is_valid_permission(v))
