"""
Gang domain models: gangs, members, personnel, cooldowns, invitations.
"""

from .cooldown import MemberCooldown
from .gang import Gang
from .invitation import GangInvitation
from .member import GangMember
from .personnel import GangPersonnel

__all__ = [
    "Gang",
    "GangMember",
    "GangPersonnel",
    "MemberCooldown",
    "GangInvitation",
]
