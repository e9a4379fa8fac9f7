"""
Shutdown Helpers
================

블로킹 작업(HTTP 요청, Kafka 전송, 백오프 대기)을 종료 신호와 경쟁시키는 유틸리티
- 종료 신호: asyncio.Event
- 종료가 먼저 오면 진행 중인 작업을 취소하고 ShutdownRequested 발생
"""

import asyncio
from typing import Awaitable, TypeVar


T = TypeVar("T")


class ShutdownRequested(Exception):
    """종료 신호로 작업이 중단됨"""


async def run_until_stopped(aw: Awaitable[T], stop: asyncio.Event) -> T:
    """
    awaitable을 실행하되 stop이 먼저 설정되면 취소

    Args:
        aw: 실행할 코루틴/awaitable
        stop: 종료 이벤트

    Returns:
        awaitable의 결과

    Raises:
        ShutdownRequested: 작업 완료 전에 종료 신호가 온 경우
    """
    if stop.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise ShutdownRequested()

    task = asyncio.ensure_future(aw)
    stop_waiter = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        stop_waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise ShutdownRequested()


async def sleep_until_stopped(delay: float, stop: asyncio.Event) -> bool:
    """
    delay초 대기, 종료 신호가 오면 즉시 반환

    Returns:
        끝까지 대기했으면 True, 종료 신호로 중단되었으면 False
    """
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return True
    return False
