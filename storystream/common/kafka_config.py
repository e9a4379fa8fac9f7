"""
Stream Pipeline Configuration
=============================

환경변수와 YAML 파일로 설정 가능한 파이프라인 설정들
- 환경변수: 각 필드의 기본값
- YAML: load_config()로 환경변수 기본값 위에 덮어쓰기
- 인증서 경로: 설정 파일 디렉토리 기준 상대 경로 해석
"""

import os
import logging
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """설정 파일을 읽거나 해석할 수 없을 때"""


def _env_list(name: str) -> list[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class KafkaConfig:
    """Kafka 연결 및 토픽 설정"""

    # Connection
    bootstrap_servers: str = field(
        default_factory=lambda: os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    )
    topic: str = field(
        default_factory=lambda: os.getenv("KAFKA_TOPIC", "hn-stories")
    )

    # 없으면 매 시작마다 처음부터 재생 (오프셋 커밋 안 함)
    consumer_group: Optional[str] = field(
        default_factory=lambda: os.getenv("KAFKA_CONSUMER_GROUP") or None
    )

    # Security (optional)
    security_protocol: str = field(
        default_factory=lambda: os.getenv("KAFKA_SECURITY_PROTOCOL", "PLAINTEXT")
    )
    ca_cert_path: Optional[str] = field(
        default_factory=lambda: os.getenv("KAFKA_CA_CERT")
    )
    client_cert_path: Optional[str] = field(
        default_factory=lambda: os.getenv("KAFKA_CLIENT_CERT")
    )
    client_key_path: Optional[str] = field(
        default_factory=lambda: os.getenv("KAFKA_CLIENT_KEY")
    )

    @property
    def uses_tls(self) -> bool:
        return self.security_protocol.upper() == "SSL" or bool(self.ca_cert_path)


@dataclass
class ScraperConfig:
    """Scraper (Producer) 설정"""

    base_url: str = field(
        default_factory=lambda: os.getenv("HN_BASE_URL", "https://hacker-news.firebaseio.com/v0")
    )

    # Polling
    poll_interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("SCRAPER_POLL_INTERVAL", "60"))
    )
    stories_to_fetch: int = field(
        default_factory=lambda: int(os.getenv("SCRAPER_STORIES_TO_FETCH", "30"))
    )
    request_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("SCRAPER_REQUEST_TIMEOUT", "10.0"))
    )

    # Publish retry
    publish_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("SCRAPER_PUBLISH_TIMEOUT", "5.0"))
    )
    max_retries: int = field(
        default_factory=lambda: int(os.getenv("SCRAPER_MAX_RETRIES", "5"))
    )
    initial_backoff_seconds: float = field(
        default_factory=lambda: float(os.getenv("SCRAPER_INITIAL_BACKOFF", "1.0"))
    )

    # Shutdown
    shutdown_grace_seconds: float = field(
        default_factory=lambda: float(os.getenv("SCRAPER_SHUTDOWN_GRACE", "2.0"))
    )
    force_exit_seconds: float = field(
        default_factory=lambda: float(os.getenv("SCRAPER_FORCE_EXIT", "3.0"))
    )

    # Monitoring (0 = disabled)
    metrics_port: int = field(
        default_factory=lambda: int(os.getenv("SCRAPER_METRICS_PORT", "0"))
    )


@dataclass
class APIConfig:
    """Story API 서버 설정"""

    host: str = field(
        default_factory=lambda: os.getenv("API_HOST", "0.0.0.0")
    )
    port: int = field(
        default_factory=lambda: int(os.getenv("API_PORT", "8080"))
    )
    graceful_shutdown_seconds: float = field(
        default_factory=lambda: float(os.getenv("API_GRACEFUL_SHUTDOWN", "5.0"))
    )


@dataclass
class FilterConfig:
    """Consumer 측 스토리 필터 설정 (재시작 시에만 변경 가능)"""

    story_types: list[str] = field(
        default_factory=lambda: _env_list("FILTER_STORY_TYPES")
    )
    keywords: list[str] = field(
        default_factory=lambda: _env_list("FILTER_KEYWORDS")
    )
    minimum_score: int = field(
        default_factory=lambda: int(os.getenv("FILTER_MINIMUM_SCORE", "0"))
    )

    @property
    def enabled(self) -> bool:
        return (
            bool(self.story_types)
            or any(k.strip() for k in self.keywords)
            or self.minimum_score > 0
        )


@dataclass
class StreamPipelineConfig:
    """전체 파이프라인 통합 설정"""

    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    api: APIConfig = field(default_factory=APIConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)


def _coerce(name: str, value: Any, current: Any) -> Any:
    """YAML 값을 기존 필드 타입에 맞게 변환"""
    if value is None:
        return current
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{name}: expected a boolean, got {value!r}")
        return value
    if isinstance(current, int) and not isinstance(current, bool):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{name}: expected an integer, got {value!r}")
        return value
    if isinstance(current, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{name}: expected a number, got {value!r}")
        return float(value)
    if isinstance(current, list):
        if not isinstance(value, list):
            raise ConfigError(f"{name}: expected a list, got {value!r}")
        return [str(item) for item in value]
    return str(value)


def _apply_section(target: Any, section_name: str, data: Any) -> None:
    if data is None:
        return
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section_name}' must be a mapping")

    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Unknown config key ignored: {section_name}.{key}")
            continue
        current = getattr(target, key)
        setattr(target, key, _coerce(f"{section_name}.{key}", value, current))


def _resolve_cert_paths(kafka: KafkaConfig, config_dir: Path) -> None:
    """상대 인증서 경로를 설정 파일 디렉토리 기준으로 변환"""
    for attr in ("ca_cert_path", "client_cert_path", "client_key_path"):
        value = getattr(kafka, attr)
        if value and not os.path.isabs(value):
            setattr(kafka, attr, str(config_dir / value))


def load_config(path: str) -> StreamPipelineConfig:
    """
    YAML 설정 파일 로드

    Args:
        path: 설정 파일 경로

    Returns:
        환경변수 기본값 위에 파일 내용을 덮어쓴 설정

    Raises:
        ConfigError: 파일을 읽을 수 없거나 형식이 잘못된 경우
    """
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to read config file: {e}") from e

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("config file must contain a mapping at the top level")

    cfg = StreamPipelineConfig()
    for section in fields(cfg):
        target = getattr(cfg, section.name)
        if is_dataclass(target):
            _apply_section(target, section.name, data.get(section.name))

    for key in data:
        if key not in {f.name for f in fields(cfg)}:
            logger.warning(f"Unknown config section ignored: {key}")

    _resolve_cert_paths(cfg.kafka, config_path.parent)
    return cfg


# Singleton instance
_config: Optional[StreamPipelineConfig] = None


def get_config() -> StreamPipelineConfig:
    """설정 인스턴스 반환"""
    global _config
    if _config is None:
        _config = StreamPipelineConfig()
    return _config


def set_config(cfg: StreamPipelineConfig) -> None:
    """파일에서 로드한 설정을 전역 설정으로 등록"""
    global _config
    _config = cfg


def reset_config() -> None:
    """설정 초기화 (테스트용)"""
    global _config
    _config = None


def connection_kwargs(kafka: KafkaConfig) -> dict:
    """
    aiokafka 클라이언트 공통 연결 인자

    인증서가 설정되어 있으면 mTLS용 SSL 컨텍스트를 생성
    """
    kwargs: dict = {"bootstrap_servers": kafka.bootstrap_servers}
    if not kafka.uses_tls:
        kwargs["security_protocol"] = kafka.security_protocol
        return kwargs

    from aiokafka.helpers import create_ssl_context

    try:
        kwargs["ssl_context"] = create_ssl_context(
            cafile=kafka.ca_cert_path,
            certfile=kafka.client_cert_path,
            keyfile=kafka.client_key_path,
        )
    except (OSError, ValueError) as e:
        raise ConfigError(f"failed to load Kafka TLS certificates: {e}") from e
    kwargs["security_protocol"] = "SSL"
    return kwargs
