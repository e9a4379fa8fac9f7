"""
Story API
=========

필터링된 스토리를 제공하는 HTTP API (인스턴스마다 서로 다른 필터)

Endpoints:
  GET /stories   - 범위 조건 + 정렬
  GET /health    - 서비스 상태 확인
  GET /stats     - 소비/저장 통계
  GET /metrics   - Prometheus 메트릭

Kafka 소비 태스크는 lifespan에서 시작/종료
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from pydantic import BaseModel

from storystream.store.story_consumer import StoryConsumer
from storystream.store.story_store import StoryStore
from .query import StoryQuery, query_stories

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Response Models
# ──────────────────────────────────────────────
class StoryResponse(BaseModel):
    id: int
    title: str
    url: Optional[str] = None
    by: Optional[str] = None
    score: int
    time: int
    type: str


class HealthResponse(BaseModel):
    status: str


class StatsResponse(BaseModel):
    stories_stored: int
    consumer: Optional[dict] = None


# ──────────────────────────────────────────────
# Consumer lifecycle
# ──────────────────────────────────────────────
def _log_consumer_exit(task: asyncio.Task) -> None:
    """소비 태스크가 끝나는 즉시 결과를 기록 (종료 전 비정상 종료 감지)"""
    if task.cancelled():
        logger.info("Consumer task cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error(
            f"Consumer task died, ingestion stopped: {error!r}",
            exc_info=(type(error), error, error.__traceback__),
        )
    else:
        logger.info("Consumer task finished")


async def _stop_consumer(
    consumer: StoryConsumer,
    task: asyncio.Task,
    timeout: float,
) -> None:
    """소비 루프를 메시지 사이에서 멈추고 연결 해제, timeout 초과 시 강제 취소"""
    await consumer.stop()
    try:
        await asyncio.wait_for(task, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Consumer task did not finish within {timeout:.1f}s, cancelled")
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error(f"Consumer task ended with error: {e}", exc_info=True)


def create_app(
    store: StoryStore,
    consumer: Optional[StoryConsumer] = None,
    shutdown_timeout: float = 5.0,
) -> FastAPI:
    """
    Story API 앱 생성

    Args:
        store: 조회 대상 인덱스
        consumer: 함께 실행할 Kafka 컨슈머 (없으면 조회 전용)
        shutdown_timeout: 종료 시 소비 태스크 대기 시간
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if consumer is not None:
            # 연결 실패는 치명적: 예외가 그대로 올라가 서버 시작 실패
            await consumer.start()
            task = asyncio.create_task(consumer.run())
            task.add_done_callback(_log_consumer_exit)
        logger.info(f"Story API ready ({len(store):,} stories)")
        yield
        logger.info("Shutting down Story API...")
        if consumer is not None and task is not None:
            await _stop_consumer(consumer, task, shutdown_timeout)

    app = FastAPI(
        title="Story API",
        description="Kafka 스토리 스트림에서 이 인스턴스의 필터를 통과한 스토리를 제공합니다.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.consumer = consumer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.mount("/metrics", make_asgi_app())

    # 동기 핸들러: 스레드풀에서 실행되어 읽기가 소비 태스크와 병렬로 진행
    @app.get("/stories", response_model=list[StoryResponse], tags=["Stories"])
    def get_stories(
        request: Request,
        min_score: Optional[str] = Query(None, alias="minScore", description="최소 점수 (포함)"),
        max_score: Optional[str] = Query(None, alias="maxScore", description="최대 점수 (포함)"),
        since: Optional[str] = Query(None, description="RFC 3339 시작 시각 (포함)"),
        until: Optional[str] = Query(None, description="RFC 3339 종료 시각 (포함)"),
        sort: Optional[str] = Query(None, description="latest | oldest | popularity"),
    ):
        """필터링 + 정렬된 스토리 목록"""
        query = StoryQuery.from_params(min_score, max_score, since, until, sort)
        stories = query_stories(request.app.state.store.snapshot(), query)
        return [story.to_dict() for story in stories]

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    def health():
        return HealthResponse(status="ok")

    @app.get("/stats", response_model=StatsResponse, tags=["System"])
    def stats(request: Request):
        current = request.app.state.consumer
        return StatsResponse(
            stories_stored=len(request.app.state.store),
            consumer=current.stats.to_dict() if current is not None else None,
        )

    return app
