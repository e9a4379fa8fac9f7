"""
In-Memory Story Store
=====================

Consumer가 채우고 Query 핸들러가 읽는 id → Story 인덱스
- 쓰기: Kafka 소비 태스크 하나 (이벤트 루프 스레드)
- 읽기: FastAPI 스레드풀의 요청 핸들러들 (동시 다수)
- 다중 읽기 / 단일 쓰기 잠금
- 제거/만료 없음: 프로세스 수명 동안 계속 증가
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from storystream.common.models import Story


class ReadWriteLock:
    """
    읽기-쓰기 잠금

    읽기끼리는 동시에 진행, 쓰기는 진행 중인 읽기가 끝날 때까지 대기.
    대기 중인 쓰기가 있으면 새 읽기는 쓰기 이후로 밀림 (쓰기 기아 방지).
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class StoryStore:
    """id → 가장 최근에 수락된 Story"""

    def __init__(self):
        self._lock = ReadWriteLock()
        self._stories: dict[int, Story] = {}

    def upsert(self, story: Story) -> None:
        """같은 id면 덮어씀 (last-writer-wins)"""
        with self._lock.write():
            self._stories[story.id] = story

    def get(self, story_id: int) -> Optional[Story]:
        with self._lock.read():
            return self._stories.get(story_id)

    def snapshot(self) -> list[Story]:
        """현재 저장된 스토리의 복사본 (순서 없음)"""
        with self._lock.read():
            return list(self._stories.values())

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._stories)
