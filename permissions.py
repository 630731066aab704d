"""
Access control

Allow/deny decisions for pages and actions. The gate only checks set
membership; the role hierarchy lives in ROLE_LEVELS and is turned into
explicit required-role sets by roles_at_least().
"""

from enum import Enum


class Role(str, Enum):
    VIEWER = 'VIEWER'
    MODERATOR = 'MODERATOR'
    STREAMER = 'STREAMER'
    ADMIN = 'ADMIN'


class AccessState(str, Enum):
    UNKNOWN = 'UNKNOWN'
    ALLOWED = 'ALLOWED'
    DENIED = 'DENIED'


# Role hierarchy (higher number = more access)
ROLE_LEVELS = {
    Role.VIEWER: 0,      # Can submit videos
    Role.MODERATOR: 1,   # Can review submissions and manage viewers
    Role.STREAMER: 2,    # Can run contests
    Role.ADMIN: 3        # Full access
}


def parse_role(value):
    """Coerce a stored role string to a Role, or None if unknown."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).upper())
    except ValueError:
        return None


def get_role_level(role):
    """Get numeric level for a role; unknown roles rank below VIEWER."""
    role = parse_role(role)
    return ROLE_LEVELS[role] if role else -1


def roles_at_least(minimum):
    """All roles at or above the given role."""
    floor = get_role_level(minimum)
    return frozenset(role for role, level in ROLE_LEVELS.items() if level >= floor)


MODERATOR_ROLES = roles_at_least(Role.MODERATOR)
STREAMER_ROLES = roles_at_least(Role.STREAMER)
ADMIN_ROLES = frozenset({Role.ADMIN})
ALL_ROLES = frozenset(Role)


def check_access(role, is_banned, required_roles):
    """A ban always wins; otherwise the role must be in required_roles."""
    if is_banned:
        return False
    role = parse_role(role)
    if role is None:
        return False
    return role in {parse_role(r) for r in required_roles}


def check_profile_access(profile, required_roles):
    """Same as check_access, treating a missing profile as denied."""
    if profile is None:
        return False
    return check_access(profile.role, profile.is_banned, required_roles)


class AccessCheck:
    """
    One evaluation of a guarded page or action.

    Starts UNKNOWN and settles once on ALLOWED or DENIED. A new instance is
    needed to check again.
    """

    def __init__(self, required_roles):
        self.required_roles = frozenset(required_roles)
        self.state = AccessState.UNKNOWN
        self.profile = None

    @property
    def allowed(self):
        return self.state == AccessState.ALLOWED

    def resolve(self, load_profile):
        """
        Settle the check using a profile loader.

        Loader errors count as no profile, so uncertain identity is denied.
        """
        if self.state != AccessState.UNKNOWN:
            return self.state

        try:
            self.profile = load_profile()
        except Exception as e:
            print(f"[AUTH] Error resolving profile: {e}")
            self.profile = None

        if check_profile_access(self.profile, self.required_roles):
            self.state = AccessState.ALLOWED
        else:
            self.state = AccessState.DENIED
        return self.state


def _is_active_staff(actor):
    return actor is not None and check_access(actor.role, actor.is_banned, MODERATOR_ROLES)


def can_change_role(actor, target, new_role):
    """
    Decide whether actor may set target's role to new_role.

    Only admins touch admin accounts or grant ADMIN/STREAMER; non-admins
    cannot change a streamer's role either.
    """
    new_role = parse_role(new_role)
    if new_role is None or not _is_active_staff(actor):
        return False

    actor_role = parse_role(actor.role)
    if actor_role == Role.ADMIN:
        return True

    target_role = parse_role(target.role)
    if target_role in (Role.ADMIN, Role.STREAMER):
        return False
    return new_role in (Role.VIEWER, Role.MODERATOR)


def can_ban(actor, target):
    """
    Decide whether actor may ban or unban target.

    Not admin-only: any unbanned moderator may ban viewers and other
    moderators. Banning a streamer takes a streamer or admin, and banning an
    admin takes an admin.
    """
    if not _is_active_staff(actor) or actor.id == target.id:
        return False

    actor_role = parse_role(actor.role)
    target_role = parse_role(target.role)
    if target_role == Role.ADMIN:
        return actor_role == Role.ADMIN
    if target_role == Role.STREAMER:
        return actor_role in STREAMER_ROLES
    return True
