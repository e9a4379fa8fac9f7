"""
Store Module - Layer 2: Filtered In-Memory Store
================================================

Components:
- story_store: id → Story 인덱스 (읽기-쓰기 잠금)
- story_consumer: Kafka 소비 → 필터 → 저장
"""

from .story_store import StoryStore, ReadWriteLock
from .story_consumer import StoryConsumer, ConsumerStats, ConsumeOutcome

__all__ = [
    "StoryStore",
    "ReadWriteLock",
    "StoryConsumer",
    "ConsumerStats",
    "ConsumeOutcome",
]
