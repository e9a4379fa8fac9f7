"""
Pipeline Metrics
================

Prometheus 메트릭 정의
- Scraper: 발행/실패/재시도, 업스트림 에러
- Consumer: 메시지 처리 결과 (stored / filtered / malformed)

메트릭 객체는 모듈 로드 시 한 번만 기본 레지스트리에 등록됨
"""

import logging

from prometheus_client import Counter, start_http_server

logger = logging.getLogger(__name__)

# 1. Scraper 발행 결과 (소스별)
stories_published_total = Counter(
    'storystream_stories_published_total',
    'Stories successfully published to Kafka',
    ['source'],
)
publish_failures_total = Counter(
    'storystream_publish_failures_total',
    'Stories dropped for this tick after exhausting publish retries',
    ['source'],
)
publish_retries_total = Counter(
    'storystream_publish_retries_total',
    'Publish attempts that failed and were retried',
    ['source'],
)

# 2. 업스트림 에러 (소스별: top / new / item)
upstream_errors_total = Counter(
    'storystream_upstream_errors_total',
    'Failed requests to the upstream story source',
    ['source'],
)

# 3. Consumer 메시지 처리 결과
messages_consumed_total = Counter(
    'storystream_messages_consumed_total',
    'Kafka messages consumed by outcome',
    ['outcome'],  # outcome: stored / filtered / malformed / failed
)


def start_metrics_server(port: int) -> bool:
    """
    Prometheus HTTP 엔드포인트 시작 (독립 프로세스용)

    Returns:
        시작 여부 (port가 0이면 비활성)
    """
    if port <= 0:
        return False
    start_http_server(port)
    logger.info(f"Prometheus metrics server started on port {port}")
    return True
