"""
Story Scraper - Layer 1: Producer
=================================

Hacker News를 주기적으로 폴링하여 새 스토리를 Kafka로 발행
- 시작 즉시 1회 폴링, 이후 poll_interval_seconds 고정 주기로 반복 (폴링 소요 시간만큼 밀리지 않음)
- 소스 순서: top → new (소스 라벨이 메시지 키)
- SeenStories로 프로세스 수명 동안 중복 발행 방지
- 발행 성공이 확인된 후에만 seen 처리 (실패하면 다음 폴링에서 재시도)
"""

import asyncio
import threading
import time
import logging
from dataclasses import dataclass, field
from typing import Optional

from storystream.common.kafka_config import ScraperConfig, get_config
from storystream.common.models import Story
from storystream.common.shutdown import ShutdownRequested, run_until_stopped, sleep_until_stopped
from storystream.monitoring import metrics
from .hn_client import HackerNewsClient, STORY_SOURCES, UpstreamError
from .kafka_producer import PublishError, StoryProducer

logger = logging.getLogger(__name__)


class SeenStories:
    """
    이미 발행한 스토리 ID 집합 (Scraper 전용)

    발행 중인 ID는 claim 상태로 따로 관리:
    - try_claim(): 본 적도 없고 발행 중도 아니면 claim
    - mark_published(): 발행 확인 후 seen으로 이동
    - release(): 발행 실패 시 claim 해제 → 다음 폴링에서 다시 시도
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._seen: set[int] = set()
        self._claimed: set[int] = set()

    def __contains__(self, story_id: int) -> bool:
        with self._lock:
            return story_id in self._seen or story_id in self._claimed

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def try_claim(self, story_id: int) -> bool:
        with self._lock:
            if story_id in self._seen or story_id in self._claimed:
                return False
            self._claimed.add(story_id)
            return True

    def mark_published(self, story_id: int) -> None:
        with self._lock:
            self._claimed.discard(story_id)
            self._seen.add(story_id)

    def release(self, story_id: int) -> None:
        with self._lock:
            self._claimed.discard(story_id)


@dataclass
class ScraperStats:
    """Scraper 통계"""
    polls: int = 0
    stories_fetched: int = 0
    stories_skipped_seen: int = 0
    stories_skipped_empty: int = 0
    publish_failures: int = 0
    upstream_errors: int = 0
    start_time: float = field(default_factory=time.time)

    def __str__(self) -> str:
        return (
            f"ScraperStats(polls={self.polls:,}, "
            f"fetched={self.stories_fetched:,}, "
            f"skipped_seen={self.stories_skipped_seen:,}, "
            f"skipped_empty={self.stories_skipped_empty:,}, "
            f"publish_failures={self.publish_failures:,}, "
            f"upstream_errors={self.upstream_errors:,})"
        )


class StoryScraper:
    """
    Hacker News 폴링 → Kafka 발행기

    종료 신호(stop())는 폴링 대기, 업스트림 요청, 발행 시도, 백오프 대기를
    모두 즉시 중단시킴.
    """

    def __init__(
        self,
        client: HackerNewsClient,
        producer: StoryProducer,
        seen: Optional[SeenStories] = None,
        config: Optional[ScraperConfig] = None,
    ):
        self.client = client
        self.producer = producer
        self.seen = seen if seen is not None else SeenStories()
        self.config = config or get_config().scraper

        self._stop = asyncio.Event()
        self.stats = ScraperStats()

        logger.info(
            f"StoryScraper initialized: "
            f"poll_interval={self.config.poll_interval_seconds}s, "
            f"stories_to_fetch={self.config.stories_to_fetch}"
        )

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """종료 신호 설정"""
        self._stop.set()

    async def run(self) -> None:
        """
        폴링 루프 (stop() 호출 시 종료)

        고정 주기: 시작 시각 기준 poll_interval_seconds 간격의 틱에 맞춰 폴링.
        폴링이 주기보다 길어지면 놓친 틱은 버리고 한 번만 즉시 다시 폴링.
        """
        logger.info("Starting Hacker News scraper...")
        interval = self.config.poll_interval_seconds
        next_tick = time.monotonic() + interval

        while not self.stopping:
            await self.poll_once()

            now = time.monotonic()
            if now < next_tick:
                if not await sleep_until_stopped(next_tick - now, self._stop):
                    break
                next_tick += interval
            else:
                missed = int((now - next_tick) // interval) + 1 if interval > 0 else 1
                logger.warning(f"Poll took longer than {interval:.1f}s, skipped {missed - 1} tick(s)")
                next_tick += missed * interval

        logger.info(f"Scraper loop ended. {self.stats} seen={len(self.seen):,}")

    async def poll_once(self) -> None:
        """top, new 소스를 순서대로 한 번씩 폴링"""
        self.stats.polls += 1
        try:
            for source in STORY_SOURCES:
                if self.stopping:
                    return
                await self._poll_source(source)
        except ShutdownRequested:
            logger.info("Poll interrupted by shutdown")

    async def _poll_source(self, source: str) -> None:
        try:
            ids = await run_until_stopped(self.client.fetch_story_ids(source), self._stop)
        except UpstreamError as e:
            self.stats.upstream_errors += 1
            metrics.upstream_errors_total.labels(source=source).inc()
            logger.error(f"Error fetching story IDs from {source}: {e}")
            return

        for story_id in ids[: self.config.stories_to_fetch]:
            if self.stopping:
                raise ShutdownRequested()

            if story_id in self.seen:
                self.stats.stories_skipped_seen += 1
                continue

            try:
                story = await run_until_stopped(self.client.fetch_story(story_id), self._stop)
            except UpstreamError as e:
                self.stats.upstream_errors += 1
                metrics.upstream_errors_total.labels(source="item").inc()
                logger.warning(f"Error fetching story {story_id}: {e}")
                continue

            self.stats.stories_fetched += 1

            # 삭제/dead 스토리는 제목이 없음
            if story is None or not story.title:
                self.stats.stories_skipped_empty += 1
                continue

            await self._publish_new(story, source)

    async def _publish_new(self, story: Story, source: str) -> bool:
        """
        처음 보는 스토리면 발행

        Returns:
            이번 호출에서 발행했는지 여부
        """
        if not self.seen.try_claim(story.id):
            self.stats.stories_skipped_seen += 1
            return False

        logger.info(f"[NEW] {story.title}" + (f"\n      {story.url}" if story.url else ""))

        try:
            await self.producer.publish(story, source, self._stop)
        except PublishError as e:
            self.seen.release(story.id)
            self.stats.publish_failures += 1
            logger.error(f"[ERROR] {e}")
            return False
        except BaseException:
            self.seen.release(story.id)
            raise

        self.seen.mark_published(story.id)
        return True
