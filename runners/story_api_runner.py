#!/usr/bin/env python3
"""
Story API Runner - Kafka → 필터 → Story API 실행기
=================================================

Kafka 스토리 토픽을 소비하면서 이 인스턴스의 필터를 통과한 스토리만 제공.
같은 토픽에 서로 다른 필터 설정으로 여러 인스턴스를 띄울 수 있음.

Usage:
    python runners/story_api_runner.py --config configs/story-api.ask-hn.yaml
    python runners/story_api_runner.py --config configs/story-api.rust.yaml --port 8082

Swagger UI: http://localhost:8080/docs
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# 프로젝트 루트를 path에 추가
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv
import uvicorn

from storystream.api.story_api import create_app
from storystream.common.kafka_config import ConfigError, get_config, load_config, set_config
from storystream.filter.story_filter import StoryFilter
from storystream.store.story_consumer import StoryConsumer
from storystream.store.story_store import StoryStore

logger = logging.getLogger(__name__)


def parse_args():
    """명령줄 인자 파싱"""
    parser = argparse.ArgumentParser(
        description='Filtered Story API server',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", default="config.yaml", help="YAML 설정 파일 경로")
    parser.add_argument("--host", default=None, help="Bind host (기본: 설정 파일 api.host)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (기본: 설정 파일 api.port)")
    parser.add_argument("--debug", action="store_true", help="디버그 로깅 활성화")
    return parser.parse_args()


def main() -> int:
    load_dotenv()
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    if os.path.exists(args.config):
        try:
            cfg = load_config(args.config)
        except ConfigError as e:
            logger.error(f"Failed to load config: {e}")
            return 1
    elif args.config != "config.yaml":
        logger.error(f"Failed to load config: {args.config} not found")
        return 1
    else:
        logger.info("No config.yaml found, using environment configuration")
        cfg = get_config()

    if args.host:
        cfg.api.host = args.host
    if args.port:
        cfg.api.port = args.port
    set_config(cfg)

    story_filter = StoryFilter.from_config(cfg.filter)
    logger.info(f"[CONFIG] {story_filter.describe()}")

    store = StoryStore()
    consumer = StoryConsumer(store, story_filter, kafka_config=cfg.kafka)
    app = create_app(
        store,
        consumer=consumer,
        shutdown_timeout=cfg.api.graceful_shutdown_seconds,
    )

    logger.info(f"Starting API server on {cfg.api.host}:{cfg.api.port}")
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=cfg.api.host,
        port=cfg.api.port,
        lifespan="on",
        timeout_graceful_shutdown=int(cfg.api.graceful_shutdown_seconds),
        log_config=None,
    ))
    server.run()

    # lifespan 시작 실패 (Kafka 연결 불가 등)
    if not server.started:
        logger.error("Failed to initialize server")
        return 1

    logger.info("Server shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
