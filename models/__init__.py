"""Database models."""

from models.chat import Conversation, Message
from models.like import Like
from models.match import Match, canonical_pair, make_pair_key
from models.user import Profile

__all__ = [
    "Like",
    "Match",
    "Conversation",
    "Message",
    "Profile",
    "canonical_pair",
    "make_pair_key",
]
