#!/usr/bin/env python3
"""
Scraper Runner - Hacker News → Kafka 발행기 실행기
=================================================

Hacker News를 주기적으로 폴링하여 새 스토리를 Kafka로 발행

Usage:
    # 기본 실행 (환경변수 설정 사용)
    python runners/scraper_runner.py

    # 설정 파일 지정
    python runners/scraper_runner.py --config configs/scraper.yaml

    # Kafka 연결만 테스트
    python runners/scraper_runner.py --test-connection

종료:
    SIGINT/SIGTERM → 폴링 중단, 진행 중인 발행/대기 중단,
    shutdown_grace_seconds 안에 Kafka flush, force_exit_seconds 후 강제 종료
"""

import asyncio
import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

# 프로젝트 루트를 path에 추가
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

from storystream.common.kafka_config import (
    ConfigError,
    StreamPipelineConfig,
    get_config,
    load_config,
    set_config,
)
from storystream.ingestor.hn_client import HackerNewsClient
from storystream.ingestor.kafka_producer import StoryProducer
from storystream.ingestor.scraper import StoryScraper, SeenStories
from storystream.monitoring.metrics import start_metrics_server

logger = logging.getLogger(__name__)


class ScraperRunner:
    """Scraper 실행기"""

    def __init__(self, config: StreamPipelineConfig):
        self.config = config

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._scraper: Optional[StoryScraper] = None
        self._force_exit_timer: Optional[threading.Timer] = None

        # 종료 시그널 핸들러
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """종료 시그널 처리"""
        if self._force_exit_timer is not None:
            return

        logger.info(f"[SIGNAL] Received signal {signum}, shutting down...")
        if self._loop and self._scraper:
            self._loop.call_soon_threadsafe(self._scraper.stop)

        # flush가 끝나지 않아도 force_exit_seconds 후 프로세스 종료
        timeout = self.config.scraper.force_exit_seconds
        logger.info(f"[WAITING] Giving {timeout:.0f} seconds for graceful shutdown...")
        self._force_exit_timer = threading.Timer(timeout, self._force_exit)
        self._force_exit_timer.daemon = True
        self._force_exit_timer.start()

    @staticmethod
    def _force_exit():
        logger.warning("[SHUTDOWN] Timeout reached, forcing exit...")
        logging.shutdown()
        os._exit(0)

    async def run(self) -> int:
        """
        Scraper 실행

        Returns:
            프로세스 종료 코드 (시작 실패 시 1)
        """
        self._loop = asyncio.get_running_loop()
        cfg = self.config

        start_metrics_server(cfg.scraper.metrics_port)

        producer = StoryProducer(kafka_config=cfg.kafka, scraper_config=cfg.scraper)
        try:
            logger.info(f"Connecting to Kafka: {cfg.kafka.bootstrap_servers}")
            await producer.start()
        except Exception as e:
            logger.error(f"Failed to initialize scraper: {e}")
            return 1

        try:
            async with HackerNewsClient(cfg.scraper) as client:
                self._scraper = StoryScraper(
                    client=client,
                    producer=producer,
                    seen=SeenStories(),
                    config=cfg.scraper,
                )
                await self._scraper.run()
        finally:
            logger.info("Shutting down Kafka writer...")
            if await producer.stop(timeout=cfg.scraper.shutdown_grace_seconds):
                logger.info("Scraper shutdown complete.")
            else:
                logger.warning("Forced shutdown after timeout.")

        return 0

    async def test_connection(self) -> bool:
        """Kafka 연결 테스트"""
        try:
            producer = StoryProducer(
                kafka_config=self.config.kafka,
                scraper_config=self.config.scraper,
            )
            await producer.start()
            await producer.stop()
            logger.info("Kafka connection test: SUCCESS")
            return True
        except Exception as e:
            logger.error(f"Kafka connection test: FAILED - {e}")
            return False


def parse_args():
    """명령줄 인자 파싱"""
    parser = argparse.ArgumentParser(
        description='Hacker News scraper publishing stories to Kafka',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='YAML 설정 파일 경로 (없으면 환경변수 설정 사용)',
    )
    parser.add_argument(
        '--kafka-servers',
        type=str,
        default=None,
        help='Kafka 브로커 주소 (예: localhost:9092)',
    )
    parser.add_argument(
        '--test-connection',
        action='store_true',
        help='Kafka 연결만 테스트',
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='디버그 로깅 활성화',
    )
    return parser.parse_args()


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main() -> int:
    """메인 함수"""
    load_dotenv()
    args = parse_args()
    configure_logging(args.debug)

    try:
        cfg = load_config(args.config) if args.config else get_config()
    except ConfigError as e:
        logger.error(f"Failed to load config: {e}")
        return 1

    if args.kafka_servers:
        cfg.kafka.bootstrap_servers = args.kafka_servers
    set_config(cfg)

    runner = ScraperRunner(cfg)

    if args.test_connection:
        return 0 if asyncio.run(runner.test_connection()) else 1

    return asyncio.run(runner.run())


if __name__ == '__main__':
    sys.exit(main())
