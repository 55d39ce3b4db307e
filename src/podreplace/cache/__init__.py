"""podreplace cache package.

Persistent dev pod to replacement mapping.
"""

from podreplace.cache.remote import RemoteCache

__all__ = ["RemoteCache"]
