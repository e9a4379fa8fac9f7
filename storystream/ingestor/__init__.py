"""
Ingestor Module - Layer 1: Story Scraper
========================================

Hacker News를 폴링하여 Kafka로 스토리 발행

Components:
- hn_client: Hacker News 업스트림 클라이언트 (httpx)
- kafka_producer: 재시도 포함 Kafka 프로듀서
- scraper: 폴링 루프 + 중복 제거
"""

from .hn_client import HackerNewsClient, UpstreamError
from .kafka_producer import StoryProducer, PublishError
from .scraper import StoryScraper, SeenStories

__all__ = [
    "HackerNewsClient",
    "UpstreamError",
    "StoryProducer",
    "PublishError",
    "StoryScraper",
    "SeenStories",
]
