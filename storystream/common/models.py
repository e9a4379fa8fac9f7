"""
Story Model & Wire Codec
========================

파이프라인 전체를 흐르는 Story 데이터와 Kafka 메시지 포맷
- 메시지 값: 플랫 JSON 객체 (id, title, url, by, score, time, type)
- 메시지 키: 소스 라벨 ("top" / "new"), 컨슈머는 해석하지 않음
"""

import json
from dataclasses import dataclass
from typing import Any, Optional

WIRE_FIELDS = ("id", "title", "url", "by", "score", "time", "type")


class StoryDecodeError(ValueError):
    """메시지를 Story로 해석할 수 없을 때"""


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise StoryDecodeError(f"field '{key}' must be a string, got {type(value).__name__}")
    return value


def _int_field(data: dict, key: str, default: Optional[int] = None) -> int:
    value = data.get(key, default)
    if value is None:
        raise StoryDecodeError(f"missing required field '{key}'")
    if isinstance(value, bool) or not isinstance(value, int):
        raise StoryDecodeError(f"field '{key}' must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class Story:
    """
    하나의 스토리 (story / ask / show / poll / job)

    id가 유일한 식별자. 같은 id의 두 Story는 같은 항목의 서로 다른 시점.
    frozen이라 저장된 값이 부분적으로 변경된 상태로 보이지 않음.
    """
    id: int
    title: str = ""
    url: Optional[str] = None
    author: Optional[str] = None
    score: int = 0
    created_at: int = 0
    type: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Story":
        """
        업스트림/Kafka JSON 객체에서 Story 생성

        Raises:
            StoryDecodeError: 객체가 아니거나 필드 타입이 잘못된 경우
        """
        if not isinstance(data, dict):
            raise StoryDecodeError(f"story must be a JSON object, got {type(data).__name__}")

        title = data.get("title")
        if title is None:
            title = ""
        elif not isinstance(title, str):
            raise StoryDecodeError("field 'title' must be a string")

        return cls(
            id=_int_field(data, "id"),
            title=title,
            url=_optional_str(data, "url"),
            author=_optional_str(data, "by"),
            score=_int_field(data, "score", 0),
            created_at=_int_field(data, "time", 0),
            type=_optional_str(data, "type") or "",
        )

    def to_dict(self) -> dict:
        """와이어 필드 이름으로 변환"""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "by": self.author,
            "score": self.score,
            "time": self.created_at,
            "type": self.type,
        }


def encode_story(story: Story) -> bytes:
    """Story → Kafka 메시지 값"""
    return json.dumps(story.to_dict(), ensure_ascii=False).encode("utf-8")


def decode_story(value: Optional[bytes]) -> Story:
    """
    Kafka 메시지 값 → Story

    Raises:
        StoryDecodeError: JSON이 아니거나 Story 형식이 아닌 경우
    """
    if value is None:
        raise StoryDecodeError("empty message value")
    try:
        data = json.loads(value)
    # ValueError: JSONDecodeError, UnicodeDecodeError, 정수 자릿수 제한 초과
    # RecursionError: 너무 깊게 중첩된 배열/객체
    except (ValueError, RecursionError) as e:
        raise StoryDecodeError(f"invalid JSON: {e}") from e
    return Story.from_dict(data)
