"""
Kafka Story Producer
====================

수집한 스토리를 Kafka로 전송하는 비동기 프로듀서
- aiokafka 기반 비동기 전송
- JSON 직렬화 (와이어 포맷: id, title, url, by, score, time, type)
- 메시지 키: 소스 라벨 ("top" / "new")
- 시도별 타임아웃 + 지수 백오프 재시도, 모든 대기는 종료 신호와 경쟁
"""

import asyncio
import time
import logging
from typing import Any, Optional
from dataclasses import dataclass, field

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError, KafkaConnectionError

from storystream.common.kafka_config import (
    KafkaConfig,
    ScraperConfig,
    connection_kwargs,
    get_config,
)
from storystream.common.models import Story, encode_story
from storystream.common.shutdown import (
    ShutdownRequested,
    run_until_stopped,
    sleep_until_stopped,
)
from storystream.monitoring import metrics

logger = logging.getLogger(__name__)


class PublishError(Exception):
    """재시도를 모두 소진한 전송 실패"""


@dataclass
class ProducerStats:
    """프로듀서 통계"""
    messages_sent: int = 0
    messages_failed: int = 0
    retries: int = 0
    bytes_sent: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def messages_per_second(self) -> float:
        elapsed = time.time() - self.start_time
        return self.messages_sent / elapsed if elapsed > 0 else 0

    @property
    def success_rate(self) -> float:
        total = self.messages_sent + self.messages_failed
        return self.messages_sent / total if total > 0 else 0

    def __str__(self) -> str:
        return (
            f"ProducerStats(sent={self.messages_sent:,}, "
            f"failed={self.messages_failed:,}, "
            f"retries={self.retries:,}, "
            f"bytes={self.bytes_sent:,}, "
            f"success={self.success_rate:.1%})"
        )


class StoryProducer:
    """
    스토리를 Kafka로 전송하는 프로듀서

    특징:
    - 비동기 전송 (aiokafka)
    - 시도별 타임아웃 (publish_timeout_seconds)
    - 최대 max_retries번 재시도, 1초부터 두 배씩 늘어나는 백오프
    - 종료 시 제한 시간 내 flush 후 연결 해제
    """

    def __init__(
        self,
        kafka_config: Optional[KafkaConfig] = None,
        scraper_config: Optional[ScraperConfig] = None,
        producer: Optional[Any] = None,
    ):
        """
        Args:
            kafka_config: Kafka 설정 (없으면 기본값 사용)
            scraper_config: 재시도/타임아웃 설정 (없으면 기본값 사용)
            producer: 외부에서 주입한 AIOKafkaProducer 호환 객체 (테스트용)
        """
        config = get_config()

        self.kafka_config = kafka_config or config.kafka
        self.scraper_config = scraper_config or config.scraper
        self.topic = self.kafka_config.topic

        self._producer = producer
        self._started = producer is not None
        self.stats = ProducerStats()

        logger.info(
            f"StoryProducer initialized: {self.kafka_config.bootstrap_servers}, "
            f"topic={self.topic}"
        )

    async def start(self) -> None:
        """
        프로듀서 시작

        Raises:
            KafkaConnectionError: 브로커에 연결할 수 없는 경우 (시작 시 치명적)
        """
        if self._started:
            logger.warning("Producer already started")
            return

        self._producer = AIOKafkaProducer(
            **connection_kwargs(self.kafka_config),
            key_serializer=lambda k: k.encode('utf-8') if k else None,
            acks='all',
            request_timeout_ms=int(self.scraper_config.publish_timeout_seconds * 1000),
        )

        try:
            await self._producer.start()
        except KafkaConnectionError as e:
            logger.error(f"Failed to connect to Kafka: {e}")
            await self._producer.stop()
            raise

        self._started = True
        self.stats = ProducerStats()
        logger.info("Kafka producer started successfully")

    async def stop(self, timeout: Optional[float] = None) -> bool:
        """
        프로듀서 중지

        버퍼에 남은 메시지를 timeout초 안에 전송하고 연결 해제.
        시간 안에 끝나지 않으면 포기하고 반환 (best-effort).

        Returns:
            제한 시간 안에 정상 종료했는지 여부
        """
        if not self._producer or not self._started:
            return True

        grace = self.scraper_config.shutdown_grace_seconds if timeout is None else timeout
        self._started = False
        try:
            await asyncio.wait_for(self._producer.stop(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(f"Forced producer shutdown after {grace:.1f}s timeout. {self.stats}")
            return False
        except Exception as e:
            logger.error(f"Error stopping producer: {e}")
            return False

        logger.info(f"Kafka producer stopped. {self.stats}")
        return True

    async def __aenter__(self) -> "StoryProducer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _send(self, value: bytes, key: str) -> None:
        metadata = await self._producer.send_and_wait(
            topic=self.topic,
            value=value,
            key=key,
        )
        logger.debug(
            f"Sent to {self.topic}: partition={getattr(metadata, 'partition', None)}, "
            f"offset={getattr(metadata, 'offset', None)}"
        )

    async def publish(
        self,
        story: Story,
        source: str,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """
        스토리 전송 (재시도 포함)

        Args:
            story: 전송할 스토리
            source: 소스 라벨 (메시지 키)
            stop: 종료 이벤트 - 설정되면 전송/백오프 대기를 즉시 중단

        Raises:
            PublishError: max_retries번 재시도 후에도 실패한 경우
            ShutdownRequested: 종료 신호로 중단된 경우
        """
        if not self._started or not self._producer:
            raise PublishError("Producer not started")

        stop = stop or asyncio.Event()
        value = encode_story(story)
        max_retries = self.scraper_config.max_retries
        backoff = self.scraper_config.initial_backoff_seconds
        last_error: Optional[BaseException] = None

        for attempt in range(max_retries + 1):
            if stop.is_set():
                raise ShutdownRequested()

            try:
                await run_until_stopped(
                    asyncio.wait_for(
                        self._send(value, source),
                        timeout=self.scraper_config.publish_timeout_seconds,
                    ),
                    stop,
                )
                self.stats.messages_sent += 1
                self.stats.bytes_sent += len(value)
                metrics.stories_published_total.labels(source=source).inc()
                logger.info(f"[PUBLISHED] {source} | {story.title} (Story ID: {story.id})")
                return
            except ShutdownRequested:
                raise
            except asyncio.TimeoutError:
                last_error = TimeoutError(
                    f"publish timeout after {self.scraper_config.publish_timeout_seconds:.1f}s"
                )
            except KafkaError as e:
                last_error = e
            except Exception as e:
                logger.error(f"Unexpected error sending story {story.id}: {e}", exc_info=True)
                last_error = e

            if attempt < max_retries:
                self.stats.retries += 1
                metrics.publish_retries_total.labels(source=source).inc()
                logger.warning(
                    f"[RETRY] Publishing story {story.id} "
                    f"(attempt {attempt + 1}/{max_retries}, waiting {backoff:.1f}s): {last_error}"
                )
                if not await sleep_until_stopped(backoff, stop):
                    raise ShutdownRequested()
                backoff *= 2

        self.stats.messages_failed += 1
        metrics.publish_failures_total.labels(source=source).inc()
        raise PublishError(
            f"failed to publish story {story.id} after {max_retries} retries: {last_error}"
        )
