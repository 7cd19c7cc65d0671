"""
BookSwap Backend - ORM Models
===============================

Importing this package registers every table with `Base.metadata`
(used by Alembic autogenerate and by the test suite's `create_all`).
"""

from bookswap.models.profile import Profile
from bookswap.models.book import Book, BookCondition
from bookswap.models.swap import SwapRequest, SwapStatus
from bookswap.models.notification import Notification, NotificationType
from bookswap.models.chat import ChatMessage

__all__ = [
    "Profile",
    "Book",
    "BookCondition",
    "SwapRequest",
    "SwapStatus",
    "Notification",
    "NotificationType",
    "ChatMessage",
]
