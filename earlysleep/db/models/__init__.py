from earlysleep.db.models.base import Base
from earlysleep.db.models.checkins import Checkin
from earlysleep.db.models.friend_requests import FriendRequest
from earlysleep.db.models.friendships import Friendship
from earlysleep.db.models.goodnight_messages import GoodnightMessage
from earlysleep.db.models.goodnight_reactions import GoodnightReactionEvent, GoodnightVote
from earlysleep.db.models.slot_daily import SlotDaily
from earlysleep.db.models.users import User

__all__ = [
    "Base",
    "Checkin",
    "FriendRequest",
    "Friendship",
    "GoodnightMessage",
    "GoodnightReactionEvent",
    "GoodnightVote",
    "SlotDaily",
    "User",
]
