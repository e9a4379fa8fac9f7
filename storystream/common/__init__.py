"""
Common Module - Shared utilities across all layers
===================================================

Cross-layer shared code:
- kafka_config: Pipeline configuration (Kafka, scraper, API, filter)
- models: Story model and Kafka wire codec
- shutdown: Cancellation helpers racing I/O against the shutdown signal
"""

from .kafka_config import (
    ConfigError,
    StreamPipelineConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)
from .models import Story, StoryDecodeError, decode_story, encode_story
from .shutdown import ShutdownRequested, run_until_stopped, sleep_until_stopped

__all__ = [
    "ConfigError",
    "StreamPipelineConfig",
    "get_config",
    "load_config",
    "reset_config",
    "set_config",
    "Story",
    "StoryDecodeError",
    "decode_story",
    "encode_story",
    "ShutdownRequested",
    "run_until_stopped",
    "sleep_until_stopped",
]
