"""
Kafka Story Producer 테스트
===========================

Usage:
    pytest tests/test_kafka_producer.py -v
"""

import asyncio
import dataclasses
import json
import time

import pytest

from conftest import FakeKafkaProducer, make_story
from storystream.common.shutdown import ShutdownRequested
from storystream.ingestor.kafka_producer import ProducerStats, PublishError, StoryProducer


def _producer(kafka_config, scraper_config, fake):
    return StoryProducer(kafka_config=kafka_config, scraper_config=scraper_config, producer=fake)


class TestPublish:
    """전송 / 재시도"""

    @pytest.mark.asyncio
    async def test_publish_success(self, kafka_config, scraper_config):
        fake = FakeKafkaProducer()
        producer = _producer(kafka_config, scraper_config, fake)

        await producer.publish(make_story(7, title="Hello"), "top")

        topic, value, key = fake.sent[0]
        assert topic == "hn-stories-test"
        assert key == "top"
        assert json.loads(value)["title"] == "Hello"
        assert producer.stats.messages_sent == 1
        assert producer.stats.bytes_sent == len(value)

    @pytest.mark.asyncio
    async def test_retry_then_success(self, kafka_config, scraper_config):
        fake = FakeKafkaProducer(fail_times=2)
        producer = _producer(kafka_config, scraper_config, fake)

        await producer.publish(make_story(1), "new")

        assert fake.attempts == 3
        assert fake.sent_ids() == [1]
        assert producer.stats.retries == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries(self, kafka_config, scraper_config):
        fake = FakeKafkaProducer(fail_times=100)
        producer = _producer(kafka_config, scraper_config, fake)

        with pytest.raises(PublishError, match="after 3 retries"):
            await producer.publish(make_story(1), "top")

        # 최초 시도 + max_retries
        assert fake.attempts == scraper_config.max_retries + 1
        assert fake.sent == []
        assert producer.stats.messages_failed == 1

    @pytest.mark.asyncio
    async def test_hung_attempt_times_out_and_retries(self, kafka_config, scraper_config):
        fake = FakeKafkaProducer(hang_times=1)
        producer = _producer(kafka_config, scraper_config, fake)

        started = time.monotonic()
        await producer.publish(make_story(1), "top")

        assert fake.attempts == 2
        assert fake.sent_ids() == [1]
        assert time.monotonic() - started < 2

    @pytest.mark.asyncio
    async def test_not_started(self, kafka_config, scraper_config):
        producer = StoryProducer(kafka_config=kafka_config, scraper_config=scraper_config)

        with pytest.raises(PublishError):
            await producer.publish(make_story(1), "top")


class TestShutdown:
    """종료 신호 / 종료 처리"""

    @pytest.mark.asyncio
    async def test_stop_during_backoff_is_prompt(self, kafka_config, scraper_config):
        slow_backoff = dataclasses.replace(scraper_config, initial_backoff_seconds=30.0)
        fake = FakeKafkaProducer(fail_times=100)
        producer = _producer(kafka_config, slow_backoff, fake)
        stop = asyncio.Event()

        task = asyncio.create_task(producer.publish(make_story(1), "top", stop))
        await asyncio.sleep(0.05)
        stop.set()

        with pytest.raises(ShutdownRequested):
            await asyncio.wait_for(task, timeout=1)
        assert fake.attempts == 1

    @pytest.mark.asyncio
    async def test_stop_during_send_is_prompt(self, kafka_config, scraper_config):
        long_timeout = dataclasses.replace(scraper_config, publish_timeout_seconds=30.0)
        fake = FakeKafkaProducer(hang_times=1)
        producer = _producer(kafka_config, long_timeout, fake)
        stop = asyncio.Event()

        task = asyncio.create_task(producer.publish(make_story(1), "top", stop))
        await asyncio.sleep(0.05)
        stop.set()

        with pytest.raises(ShutdownRequested):
            await asyncio.wait_for(task, timeout=1)
        assert fake.sent == []

    @pytest.mark.asyncio
    async def test_already_stopped(self, kafka_config, scraper_config):
        fake = FakeKafkaProducer()
        producer = _producer(kafka_config, scraper_config, fake)
        stop = asyncio.Event()
        stop.set()

        with pytest.raises(ShutdownRequested):
            await producer.publish(make_story(1), "top", stop)
        assert fake.attempts == 0

    @pytest.mark.asyncio
    async def test_stop_flushes(self, kafka_config, scraper_config):
        fake = FakeKafkaProducer()
        producer = _producer(kafka_config, scraper_config, fake)

        assert await producer.stop() is True
        assert fake.stopped

    @pytest.mark.asyncio
    async def test_stop_gives_up_after_timeout(self, kafka_config, scraper_config):
        fake = FakeKafkaProducer(hang_on_stop=True)
        producer = _producer(kafka_config, scraper_config, fake)

        started = time.monotonic()
        assert await producer.stop(timeout=0.05) is False
        assert time.monotonic() - started < 1


class TestProducerStats:
    def test_success_rate(self):
        stats = ProducerStats(messages_sent=3, messages_failed=1)

        assert stats.success_rate == 0.75
        assert "sent=3" in str(stats)
