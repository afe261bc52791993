"""Contact Timeline - merged activity and email history for CRM contacts.

This package merges locally authored contact activities with paginated,
incrementally synced Gmail messages into a single thread-grouped timeline.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from contact_timeline.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]
