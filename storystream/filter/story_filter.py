"""
Story Filter
============

Consumer 측 스토리 필터 (순수 함수, 부작용 없음)
- 타입: 허용 타입 집합이 비어 있으면 통과, 아니면 포함 여부
- 점수: score >= minimum_score
- 키워드: 소문자 제목에 키워드 중 하나라도 포함 (OR)

세 조건은 AND. 설정이 모두 비어 있으면 항상 통과 (passthrough).
"""

from dataclasses import dataclass
from typing import Iterable

from storystream.common.kafka_config import FilterConfig
from storystream.common.models import Story


@dataclass(frozen=True)
class StoryFilter:
    """생성 후 변경 불가능한 필터"""
    story_types: frozenset = frozenset()
    keywords: tuple = ()           # 소문자로 정규화, 빈 키워드 제외
    minimum_score: int = 0

    @classmethod
    def from_config(cls, config: FilterConfig) -> "StoryFilter":
        return cls.build(config.story_types, config.keywords, config.minimum_score)

    @classmethod
    def build(
        cls,
        story_types: Iterable[str] = (),
        keywords: Iterable[str] = (),
        minimum_score: int = 0,
    ) -> "StoryFilter":
        return cls(
            story_types=frozenset(story_types),
            keywords=tuple(k.lower() for k in keywords if k.strip()),
            minimum_score=minimum_score,
        )

    @property
    def enabled(self) -> bool:
        """조건이 하나라도 설정되어 있으면 True"""
        return bool(self.story_types) or bool(self.keywords) or self.minimum_score > 0

    def matches_type(self, story: Story) -> bool:
        return not self.story_types or story.type in self.story_types

    def matches_score(self, story: Story) -> bool:
        return story.score >= self.minimum_score

    def matches_keywords(self, story: Story) -> bool:
        if not self.keywords:
            return True
        title = story.title.lower()
        return any(keyword in title for keyword in self.keywords)

    def matches(self, story: Story) -> bool:
        """모든 조건을 통과하면 True (type → score → keyword 순서로 단락 평가)"""
        if not self.enabled:
            return True
        return (
            self.matches_type(story)
            and self.matches_score(story)
            and self.matches_keywords(story)
        )

    def describe(self) -> str:
        if not self.enabled:
            return "No filters configured - consuming all stories"

        parts = []
        if self.story_types:
            parts.append(f"story types={sorted(self.story_types)}")
        if self.keywords:
            parts.append(f"keywords={list(self.keywords)}")
        if self.minimum_score > 0:
            parts.append(f"minimum score={self.minimum_score}")
        return "Consumer-side filtering enabled: " + ", ".join(parts)


def matches(story: Story, config: FilterConfig) -> bool:
    """설정으로 바로 평가하는 편의 함수"""
    return StoryFilter.from_config(config).matches(story)
