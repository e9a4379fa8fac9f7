"""
storystream - Hacker News 스토리 스트리밍 파이프라인
====================================================

Scraper → Kafka → 필터링된 Story API 인스턴스들
"""

__version__ = "1.0.0"
