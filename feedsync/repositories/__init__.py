"""Feed state container."""
from feedsync.repositories.feed_store import FeedStore, StoreListener

__all__ = [
    "FeedStore",
    "StoreListener",
]
