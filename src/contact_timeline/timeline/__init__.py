"""Timeline transforms, merging and the per-contact controller."""

from .controller import ACTIVITIES_ERROR, TimelineController, TimelineSnapshot
from .merger import MergedActivity, TimelineCaches, TimelineMerger, oldest_email_date
from .transform import email_to_activity, internal_to_activity

__all__ = [
    "ACTIVITIES_ERROR",
    "MergedActivity",
    "TimelineCaches",
    "TimelineController",
    "TimelineMerger",
    "TimelineSnapshot",
    "email_to_activity",
    "internal_to_activity",
    "oldest_email_date",
]
