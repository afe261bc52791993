"""Conversation threading of contact emails."""

from .grouping import ThreadGroupingEngine, is_real_thread_id

__all__ = ["ThreadGroupingEngine", "is_real_thread_id"]
