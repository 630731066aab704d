"""Records and status values shared by the store and the web layer."""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

from permissions import Role, parse_role


class SubmissionStatus(str, Enum):
    UNAPPROVED = 'UNAPPROVED'
    APPROVED = 'APPROVED'
    DENIED = 'DENIED'
    WINNER = 'WINNER'


class ContestStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'
    ENDED = 'ENDED'


# Moderation action -> resulting submission status
MODERATION_ACTIONS = {
    'APPROVE': SubmissionStatus.APPROVED,
    'DENY': SubmissionStatus.DENIED,
    'MARK_WINNER': SubmissionStatus.WINNER,
    'UNAPPROVE': SubmissionStatus.UNAPPROVED,
}


@dataclass
class Profile:
    id: str
    role: Role = Role.VIEWER
    is_banned: bool = False
    username: str = 'Unknown'
    avatar_url: Optional[str] = None
    twitch_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        """Build a Profile from a profiles table row."""
        return cls(
            id=row['id'],
            # Unknown stored roles fall back to the least privileged role
            role=parse_role(row.get('role')) or Role.VIEWER,
            is_banned=row.get('is_banned') is True,
            username=row.get('username') or 'Unknown',
            avatar_url=row.get('avatar_url'),
            twitch_id=row.get('twitch_id'),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    def to_dict(self):
        data = asdict(self)
        data['role'] = self.role.value
        return data
