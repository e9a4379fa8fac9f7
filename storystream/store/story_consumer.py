"""
Story Consumer - Layer 2: Filtered Store
========================================

Kafka 스토리 토픽을 소비하여 필터를 통과한 스토리만 StoryStore에 저장
- 메시지 디코딩 실패: 로그 후 건너뜀 (스트림은 계속)
- 그 밖의 처리 중 예외: 로그 후 failed로 집계, 다음 메시지 계속
- 필터 탈락: 로그 후 버림 (에러 아님)
- 결과와 관계없이 오프셋 전진 (consumer group이 있으면 메시지마다 커밋)
- consumer group이 없으면 매 시작마다 처음(earliest)부터 재생, 커밋 안 함
"""

import asyncio
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import ConsumerStoppedError, KafkaError

from storystream.common.kafka_config import KafkaConfig, connection_kwargs, get_config
from storystream.common.models import Story, StoryDecodeError, decode_story
from storystream.filter.story_filter import StoryFilter
from storystream.monitoring import metrics
from .story_store import StoryStore

logger = logging.getLogger(__name__)


class ConsumeOutcome(Enum):
    """메시지 처리 결과"""
    STORED = "stored"
    FILTERED = "filtered"
    MALFORMED = "malformed"
    FAILED = "failed"


@dataclass
class ConsumerStats:
    """컨슈머 통계"""
    messages_consumed: int = 0
    messages_stored: int = 0
    messages_filtered: int = 0
    messages_malformed: int = 0
    messages_failed: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def messages_per_second(self) -> float:
        elapsed = time.time() - self.start_time
        return self.messages_consumed / elapsed if elapsed > 0 else 0

    def record(self, outcome: ConsumeOutcome) -> None:
        self.messages_consumed += 1
        if outcome is ConsumeOutcome.STORED:
            self.messages_stored += 1
        elif outcome is ConsumeOutcome.FILTERED:
            self.messages_filtered += 1
        elif outcome is ConsumeOutcome.MALFORMED:
            self.messages_malformed += 1
        else:
            self.messages_failed += 1

    def to_dict(self) -> dict:
        return {
            'consumed': self.messages_consumed,
            'stored': self.messages_stored,
            'filtered': self.messages_filtered,
            'malformed': self.messages_malformed,
            'failed': self.messages_failed,
            'messages_per_second': self.messages_per_second,
        }

    def __str__(self) -> str:
        return (
            f"ConsumerStats(consumed={self.messages_consumed:,}, "
            f"stored={self.messages_stored:,}, "
            f"filtered={self.messages_filtered:,}, "
            f"malformed={self.messages_malformed:,}, "
            f"failed={self.messages_failed:,})"
        )


class StoryConsumer:
    """
    Kafka 스토리 토픽 → 필터 → StoryStore

    Usage:
        async with StoryConsumer(store, story_filter) as consumer:
            await consumer.run()
    """

    # fetch 에러 후 재시도 전 대기 시간
    FETCH_ERROR_BACKOFF = 1.0

    def __init__(
        self,
        store: StoryStore,
        story_filter: StoryFilter,
        kafka_config: Optional[KafkaConfig] = None,
        consumer: Optional[Any] = None,
    ):
        """
        Args:
            store: 저장 대상 인덱스
            story_filter: 수집 시점 필터
            kafka_config: Kafka 설정 (없으면 기본값 사용)
            consumer: 외부에서 주입한 AIOKafkaConsumer 호환 객체 (테스트용)
        """
        self.store = store
        self.filter = story_filter
        self.kafka_config = kafka_config or get_config().kafka
        self.topic = self.kafka_config.topic
        self.group_id = self.kafka_config.consumer_group

        self._consumer = consumer
        self._running = consumer is not None
        self.stats = ConsumerStats()

        logger.info(
            f"StoryConsumer initialized: topic={self.topic}, "
            f"group={self.group_id or '(none, replay from earliest)'}"
        )

    @property
    def commits_offsets(self) -> bool:
        return self.group_id is not None

    async def start(self) -> None:
        """
        Consumer 시작

        Raises:
            KafkaError: 브로커 연결 실패 (시작 시 치명적)
        """
        if self._consumer is None:
            self._consumer = AIOKafkaConsumer(
                self.topic,
                **connection_kwargs(self.kafka_config),
                group_id=self.group_id,
                auto_offset_reset='earliest',
                enable_auto_commit=False,
            )

        try:
            await self._consumer.start()
        except Exception as e:
            logger.error(f"Failed to start consumer: {e}")
            await self._consumer.stop()
            raise

        self._running = True
        self.stats = ConsumerStats()
        logger.info(f"StoryConsumer started. {self.filter.describe()}")

    async def stop(self) -> None:
        """Consumer 중지 (진행 중인 메시지 처리가 끝난 뒤 루프 종료)"""
        self._running = False
        if self._consumer:
            try:
                await self._consumer.stop()
            except Exception as e:
                logger.error(f"Error stopping consumer: {e}")
        logger.info(f"StoryConsumer stopped. {self.stats}")

    async def __aenter__(self) -> "StoryConsumer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def handle_message(self, value: Optional[bytes]) -> ConsumeOutcome:
        """
        메시지 단건 처리 (디코딩 → 필터 → 저장)

        await 지점이 없어 처리 중간에 취소되지 않음
        """
        try:
            story = decode_story(value)
        except StoryDecodeError as e:
            logger.error(f"[ERROR] Failed to decode story: {e}")
            outcome = ConsumeOutcome.MALFORMED
        else:
            outcome = self._store_if_matches(story)

        self.stats.record(outcome)
        metrics.messages_consumed_total.labels(outcome=outcome.value).inc()
        return outcome

    def _store_if_matches(self, story: Story) -> ConsumeOutcome:
        if not self.filter.matches(story):
            logger.info(
                f"[FILTERED] Story ID {story.id}: {story.title} "
                f"(Type: {story.type}, Score: {story.score})"
            )
            return ConsumeOutcome.FILTERED

        self.store.upsert(story)
        logger.info(f"[STORED] Story ID {story.id}: {story.title} (Score: {story.score})")
        return ConsumeOutcome.STORED

    async def _commit(self) -> None:
        if not self.commits_offsets:
            return
        try:
            await self._consumer.commit()
        except KafkaError as e:
            logger.warning(f"Offset commit failed: {e}")

    async def run(
        self,
        max_messages: Optional[int] = None,
        callback: Optional[Callable[[ConsumeOutcome], Any]] = None,
    ) -> None:
        """
        메인 소비 루프

        Args:
            max_messages: 최대 처리 메시지 수
            callback: 메시지 처리 후 콜백
        """
        if not self._running:
            raise RuntimeError("Consumer not started. Call start() first.")

        logger.info("Starting Kafka message consumer...")
        processed = 0

        try:
            while self._running:
                try:
                    message = await self._consumer.getone()
                except ConsumerStoppedError:
                    break
                except Exception as e:
                    logger.error(f"[ERROR] Failed to fetch message: {e}")
                    await asyncio.sleep(self.FETCH_ERROR_BACKOFF)
                    continue

                try:
                    outcome = self.handle_message(message.value)
                except Exception as e:
                    logger.error(f"[ERROR] Error processing message: {e}", exc_info=True)
                    outcome = ConsumeOutcome.FAILED
                    self.stats.record(outcome)
                    metrics.messages_consumed_total.labels(outcome=outcome.value).inc()

                # 처리 결과와 관계없이 오프셋 전진
                await self._commit()

                if callback:
                    callback(outcome)

                processed += 1
                if max_messages and processed >= max_messages:
                    logger.info(f"Reached max messages: {max_messages}")
                    break

        except asyncio.CancelledError:
            logger.info("Consumer loop cancelled")
            raise
        finally:
            logger.info(f"Consumer loop ended. Processed: {processed}")
