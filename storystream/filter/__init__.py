"""
Filter Module - Consumer-side story filtering
=============================================
"""

from .story_filter import StoryFilter, matches

__all__ = ["StoryFilter", "matches"]
