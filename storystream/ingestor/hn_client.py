"""
Hacker News Upstream Client
===========================

Hacker News Firebase API를 읽는 비동기 클라이언트
- httpx AsyncClient 기반
- 소스별 ID 목록 (top / new) + ID별 스토리 조회
- 실패는 모두 UpstreamError로 통일 (다음 폴링에서 자연스럽게 재시도)
"""

import logging
from typing import Any, Optional

import httpx

from storystream.common.kafka_config import ScraperConfig, get_config
from storystream.common.models import Story, StoryDecodeError

logger = logging.getLogger(__name__)

# 소스 라벨 → 엔드포인트 (폴링 순서대로)
STORY_SOURCES = {
    "top": "/topstories.json",
    "new": "/newstories.json",
}
ITEM_PATH = "/item/{id}.json"


class UpstreamError(Exception):
    """업스트림 요청 실패 (네트워크, 상태 코드, 잘못된 JSON)"""


class HackerNewsClient:
    """
    Hacker News API 클라이언트

    Usage:
        async with HackerNewsClient() as client:
            ids = await client.fetch_story_ids("top")
            story = await client.fetch_story(ids[0])
    """

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Scraper 설정 (없으면 기본값 사용)
            client: 외부에서 주입한 httpx 클라이언트 (테스트용)
        """
        self.config = config or get_config().scraper
        self.base_url = self.config.base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.request_timeout_seconds),
                follow_redirects=True,
            )
        logger.info(f"HackerNewsClient started: {self.base_url}")

    async def stop(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HackerNewsClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _get_json(self, path: str) -> Any:
        if self._client is None:
            raise RuntimeError("HackerNewsClient not started")

        url = f"{self.base_url}{path}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamError(f"request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(f"unexpected status code {response.status_code} from {url}")

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"invalid JSON from {url}: {e}") from e

    async def fetch_story_ids(self, source: str) -> list[int]:
        """
        소스별 스토리 ID 목록 조회

        Args:
            source: "top" 또는 "new"

        Returns:
            순위/시간 순서의 ID 리스트
        """
        try:
            path = STORY_SOURCES[source]
        except KeyError:
            raise ValueError(f"unknown story source: {source}") from None

        data = await self._get_json(path)
        if not isinstance(data, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in data
        ):
            raise UpstreamError(f"story id list for '{source}' is not a list of integers")
        return data

    async def fetch_story(self, story_id: int) -> Optional[Story]:
        """
        단일 스토리 조회

        Returns:
            Story, 업스트림이 null을 반환하면 None
        """
        data = await self._get_json(ITEM_PATH.format(id=story_id))
        if data is None:
            return None
        try:
            return Story.from_dict(data)
        except StoryDecodeError as e:
            raise UpstreamError(f"malformed item {story_id}: {e}") from e
