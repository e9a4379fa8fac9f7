"""
Story Query
===========

StoryStore 스냅샷에 범위 조건과 정렬을 적용
- 조건 (모두 선택, AND): min_score, max_score, since, until (모두 포함 경계)
- 정렬: latest (시간 내림차순, 기본) / oldest (시간 오름차순) / popularity (점수 내림차순)
- 잘못된 숫자/시각 파라미터는 없는 것으로 취급 (요청을 거부하지 않음)
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from storystream.common.models import Story


class SortOrder(Enum):
    """정렬 기준"""
    LATEST = "latest"
    OLDEST = "oldest"
    POPULARITY = "popularity"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOrder":
        """알 수 없거나 없는 값은 LATEST"""
        try:
            return cls(value)
        except ValueError:
            return cls.LATEST


_INT_PATTERN = re.compile(r"[+-]?[0-9]+")

# YYYY-MM-DDTHH:MM:SS[.frac](Z|±HH:MM)
_RFC3339_PATTERN = re.compile(
    r"(?P<datetime>[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2})"
    r"(?:\.(?P<fraction>[0-9]+))?"
    r"(?P<offset>Z|[+-][0-9]{2}:[0-9]{2})"
)


def parse_int(value: Optional[str]) -> Optional[int]:
    """부호 있는 10진수만 허용 (공백, 밑줄, 소수점은 잘못된 값)"""
    if value is None or not _INT_PATTERN.fullmatch(value):
        return None
    return int(value)


def parse_rfc3339(value: Optional[str]) -> Optional[int]:
    """
    RFC 3339 시각 → unix timestamp

    'T' 구분자와 UTC 오프셋(Z 또는 ±HH:MM)이 필수. 소수 초는 버림.
    """
    if not value:
        return None
    match = _RFC3339_PATTERN.fullmatch(value)
    if match is None:
        return None

    offset = match.group("offset")
    text = match.group("datetime") + ("+00:00" if offset == "Z" else offset)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return int(parsed.timestamp())


@dataclass(frozen=True)
class StoryQuery:
    """조회 조건"""
    min_score: Optional[int] = None
    max_score: Optional[int] = None
    since: Optional[int] = None
    until: Optional[int] = None
    sort: SortOrder = SortOrder.LATEST

    @classmethod
    def from_params(
        cls,
        min_score: Optional[str] = None,
        max_score: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> "StoryQuery":
        """HTTP 쿼리 문자열 값에서 생성 (잘못된 값은 무시)"""
        return cls(
            min_score=parse_int(min_score),
            max_score=parse_int(max_score),
            since=parse_rfc3339(since),
            until=parse_rfc3339(until),
            sort=SortOrder.parse(sort),
        )

    def accepts(self, story: Story) -> bool:
        if self.min_score is not None and story.score < self.min_score:
            return False
        if self.max_score is not None and story.score > self.max_score:
            return False
        if self.since is not None and story.created_at < self.since:
            return False
        if self.until is not None and story.created_at > self.until:
            return False
        return True


def query_stories(stories: Iterable[Story], query: StoryQuery) -> list[Story]:
    """
    조건에 맞는 스토리를 정렬해서 반환 (입력은 변경하지 않음)

    Args:
        stories: StoryStore.snapshot() 결과
        query: 조회 조건
    """
    result = [story for story in stories if query.accepts(story)]

    if query.sort is SortOrder.OLDEST:
        result.sort(key=lambda s: s.created_at)
    elif query.sort is SortOrder.POPULARITY:
        result.sort(key=lambda s: s.score, reverse=True)
    else:
        result.sort(key=lambda s: s.created_at, reverse=True)

    return result
