"""
공용 테스트 픽스처 / Fake 객체
==============================

실제 Kafka, Hacker News 없이 파이프라인을 검증하기 위한 대역
"""

import asyncio
import json
import sys
from collections import namedtuple
from pathlib import Path
from typing import Optional

import pytest
from aiokafka.errors import ConsumerStoppedError, KafkaConnectionError

# 프로젝트 루트를 path에 추가
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from storystream.common.kafka_config import KafkaConfig, ScraperConfig
from storystream.common.models import Story
from storystream.ingestor.hn_client import UpstreamError


FakeMessage = namedtuple("FakeMessage", ["value", "key"])
RecordMetadata = namedtuple("RecordMetadata", ["topic", "partition", "offset"])


class FakeKafkaProducer:
    """AIOKafkaProducer 대역: 전송 기록, 실패/멈춤 주입"""

    def __init__(self, fail_times: int = 0, hang_times: int = 0, hang_on_stop: bool = False):
        self.fail_times = fail_times
        self.hang_times = hang_times
        self.hang_on_stop = hang_on_stop
        self.attempts = 0
        self.sent: list[tuple[str, bytes, Optional[str]]] = []
        self.stopped = False

    async def start(self):
        pass

    async def stop(self):
        if self.hang_on_stop:
            await asyncio.sleep(3600)
        self.stopped = True

    async def send_and_wait(self, topic, value=None, key=None):
        self.attempts += 1
        if self.hang_times > 0:
            self.hang_times -= 1
            await asyncio.sleep(3600)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise KafkaConnectionError("broker unavailable")
        self.sent.append((topic, value, key))
        return RecordMetadata(topic, 0, len(self.sent) - 1)

    def sent_ids(self) -> list[int]:
        return [json.loads(value)["id"] for _, value, _ in self.sent]


class FakeKafkaConsumer:
    """
    AIOKafkaConsumer 대역

    stop_when_empty=True: 메시지를 모두 소비하면 ConsumerStoppedError
    stop_when_empty=False: stop() 호출까지 대기
    """

    def __init__(self, messages=(), stop_when_empty: bool = True):
        self._messages = list(messages)
        self.stop_when_empty = stop_when_empty
        self.commits = 0
        self.started = False
        self._stopped = asyncio.Event()

    async def start(self):
        self.started = True

    async def stop(self):
        self._stopped.set()

    async def getone(self):
        if self._messages:
            return self._messages.pop(0)
        if not self.stop_when_empty:
            await self._stopped.wait()
        raise ConsumerStoppedError()

    async def commit(self):
        self.commits += 1


class FakeHNClient:
    """HackerNewsClient 대역"""

    def __init__(self, ids=None, stories=None, failing_sources=(), failing_items=()):
        self.ids = ids or {"top": [], "new": []}
        self.stories = stories or {}
        self.failing_sources = set(failing_sources)
        self.failing_items = set(failing_items)
        self.item_requests: list[int] = []

    async def fetch_story_ids(self, source):
        if source in self.failing_sources:
            raise UpstreamError(f"{source} unavailable")
        return list(self.ids.get(source, []))

    async def fetch_story(self, story_id):
        self.item_requests.append(story_id)
        if story_id in self.failing_items:
            raise UpstreamError(f"item {story_id} unavailable")
        return self.stories.get(story_id)


def make_story(story_id: int, **overrides) -> Story:
    values = dict(
        id=story_id,
        title=f"Story {story_id}",
        url=f"https://example.com/{story_id}",
        author="pg",
        score=10,
        created_at=1_700_000_000 + story_id,
        type="story",
    )
    values.update(overrides)
    return Story(**values)


def story_message(story_id: int, **overrides) -> FakeMessage:
    story = make_story(story_id, **overrides)
    return FakeMessage(json.dumps(story.to_dict()).encode("utf-8"), b"top")


@pytest.fixture
def kafka_config() -> KafkaConfig:
    return KafkaConfig(
        bootstrap_servers="localhost:9092",
        topic="hn-stories-test",
        consumer_group=None,
        security_protocol="PLAINTEXT",
        ca_cert_path=None,
        client_cert_path=None,
        client_key_path=None,
    )


@pytest.fixture
def scraper_config() -> ScraperConfig:
    return ScraperConfig(
        base_url="https://hn.test/v0",
        poll_interval_seconds=0.05,
        stories_to_fetch=30,
        request_timeout_seconds=1.0,
        publish_timeout_seconds=0.2,
        max_retries=3,
        initial_backoff_seconds=0.01,
        shutdown_grace_seconds=0.2,
        force_exit_seconds=0.5,
        metrics_port=0,
    )
