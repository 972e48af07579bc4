from __future__ import annotations
import logging
from typing import Any, Optional

import httpx

from app.settings import PipelineSettings, check_settings
from core.command_matcher import CommandMatcher, CommandVocabulary
from core.errors import ConfigurationError
from core.state_machine import CommandPipeline
from core.types import BackendConfig
from event_bus import EventBus
from providers.base import TranscriptionProvider
from providers.local_provider import FasterWhisperModel, LocalWhisperProvider
from providers.remote_provider import RemoteWhisperProvider
from utils.transcript_filter import TranscriptFilter

logger = logging.getLogger(__name__)


def build_provider(settings: PipelineSettings, *, http_client: Optional[httpx.AsyncClient] = None,
                   local_model: Any = None) -> TranscriptionProvider:
    """Pick exactly one backend from ``settings.backend``. No runtime fallback."""
    if settings.backend == "remote":
        cfg = BackendConfig(
            endpoint=settings.server_url,
            model=settings.model_name,
            api_key=settings.api_key,
            timeout_s=settings.timeout_s,
            language=settings.language or None,
        )
        return RemoteWhisperProvider(cfg, client=http_client)
    if settings.backend == "local":
        if local_model is None:
            local_model = FasterWhisperModel(settings.local_model_size, device=settings.local_device,
                                             compute_type=settings.local_compute_type)
        cfg = BackendConfig(model=settings.local_model_size, timeout_s=settings.local_timeout_s,
                            language=settings.local_language or None)
        return LocalWhisperProvider(local_model, cfg)
    raise ConfigurationError(f"unknown backend {settings.backend!r}")


def build_matcher(settings: PipelineSettings) -> CommandMatcher:
    if settings.vocabulary_path:
        try:
            vocabulary = CommandVocabulary.from_json_file(settings.vocabulary_path)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"cannot load command vocabulary {settings.vocabulary_path}: {e}") from e
    else:
        vocabulary = CommandVocabulary.default()
    return CommandMatcher(vocabulary, threshold=settings.similarity_threshold)


def build_pipeline(settings: PipelineSettings, *, http_client: Optional[httpx.AsyncClient] = None,
                   local_model: Any = None, bus: Optional[EventBus] = None) -> CommandPipeline:
    """Wire a pipeline or raise ConfigurationError before any audio is accepted."""
    check_settings(settings)
    provider = build_provider(settings, http_client=http_client, local_model=local_model)
    pipeline = CommandPipeline(
        provider,
        matcher=build_matcher(settings),
        transcript_filter=TranscriptFilter(settings.extra_blacklist),
        gain=settings.gain,
        min_record_s=settings.min_record_s,
        volume_threshold=settings.volume_threshold,
        stream_segments=settings.stream_segments,
        bus=bus,
    )
    logger.info("Voice pipeline ready: backend=%s, commands=%s, threshold=%.2f",
                provider.name, pipeline.matcher.vocabulary.commands, settings.similarity_threshold)
    return pipeline
