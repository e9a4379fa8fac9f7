"""
API Module - Layer 3: Story Query API
=====================================

Components:
- query: 범위 조건 + 정렬 (순수 함수)
- story_api: FastAPI 앱 (Kafka 소비 태스크 lifespan 관리)
"""

from .query import SortOrder, StoryQuery, query_stories
from .story_api import create_app

__all__ = ["SortOrder", "StoryQuery", "query_stories", "create_app"]
