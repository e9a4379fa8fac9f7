"""
Runner 시작 실패 테스트
=======================

Kafka 연결 실패는 시작 시 치명적: 두 실행기 모두 종료 코드 1

Usage:
    pytest tests/test_runners.py -v
"""

import signal
import sys

import pytest
from aiokafka.errors import KafkaConnectionError
from fastapi.testclient import TestClient

from conftest import FakeKafkaConsumer
from runners import scraper_runner, story_api_runner
from storystream.api.story_api import create_app
from storystream.common.kafka_config import StreamPipelineConfig, reset_config
from storystream.filter.story_filter import StoryFilter
from storystream.ingestor.kafka_producer import StoryProducer
from storystream.store.story_consumer import StoryConsumer
from storystream.store.story_store import StoryStore


async def _refuse_connection(self):
    raise KafkaConnectionError("Unable to bootstrap from [('localhost', 9092)]")


@pytest.fixture(autouse=True)
def _reset_global_config():
    yield
    reset_config()


class UnreachableKafkaConsumer(FakeKafkaConsumer):
    async def start(self):
        raise KafkaConnectionError("Unable to bootstrap from [('localhost', 9092)]")


class TestScraperRunner:
    """Scraper 실행기"""

    @pytest.mark.asyncio
    async def test_producer_start_failure_returns_1(self, monkeypatch, kafka_config, scraper_config):
        monkeypatch.setattr(signal, "signal", lambda *args: None)
        monkeypatch.setattr(StoryProducer, "start", _refuse_connection)

        runner = scraper_runner.ScraperRunner(
            StreamPipelineConfig(kafka=kafka_config, scraper=scraper_config)
        )

        assert await runner.run() == 1

    @pytest.mark.asyncio
    async def test_connection_test_fails(self, monkeypatch, kafka_config, scraper_config):
        monkeypatch.setattr(signal, "signal", lambda *args: None)
        monkeypatch.setattr(StoryProducer, "start", _refuse_connection)

        runner = scraper_runner.ScraperRunner(
            StreamPipelineConfig(kafka=kafka_config, scraper=scraper_config)
        )

        assert await runner.test_connection() is False


class TestStoryApiRunner:
    """Story API 실행기"""

    def test_lifespan_propagates_consumer_start_failure(self, kafka_config):
        store = StoryStore()
        consumer = StoryConsumer(
            store,
            StoryFilter.build(),
            kafka_config=kafka_config,
            consumer=UnreachableKafkaConsumer(),
        )

        with pytest.raises(KafkaConnectionError):
            with TestClient(create_app(store, consumer=consumer)):
                pass

    def test_main_returns_1_when_consumer_cannot_start(self, monkeypatch, tmp_path):
        config_path = tmp_path / "story-api.yaml"
        config_path.write_text(
            "kafka:\n"
            "  bootstrap_servers: localhost:9092\n"
            "api:\n"
            "  host: 127.0.0.1\n"
            "  port: 0\n"
            "  graceful_shutdown_seconds: 1\n",
            encoding="utf-8",
        )
        monkeypatch.setattr(sys, "argv", ["story_api_runner.py", "--config", str(config_path)])
        monkeypatch.setattr(StoryConsumer, "start", _refuse_connection)

        assert story_api_runner.main() == 1

    def test_main_returns_1_for_missing_config(self, monkeypatch, tmp_path):
        monkeypatch.setattr(
            sys, "argv", ["story_api_runner.py", "--config", str(tmp_path / "missing.yaml")]
        )

        assert story_api_runner.main() == 1
