"""Pipeline configuration from environment variables, ``.env`` and an optional JSON file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://api.groq.com/openai/v1/audio/transcriptions"
DEFAULT_MODEL = "whisper-large-v3"
UNIVERSITY_SERVER_URL = "http://gpu1.esit.ull.es:4000/v1/audio/transcriptions"
API_KEY_PLACEHOLDER = "PASTE_YOUR_API_KEY_HERE"

BACKENDS = ("remote", "local")

_TRUTHY = {"1", "true", "yes", "on", "enabled"}


def _env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    return default if raw is None else raw.strip()


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r, using %s", name, os.getenv(name), default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class PipelineSettings:
    backend: str = "remote"
    server_url: str = DEFAULT_SERVER_URL
    model_name: str = DEFAULT_MODEL
    api_key: str = ""
    timeout_s: float = 30.0
    language: str = ""
    local_model_size: str = "base.en"
    local_device: str = "cpu"
    local_compute_type: str = "int8"
    local_timeout_s: Optional[float] = 60.0
    local_language: str = "en"
    gain: float = 4.0
    min_record_s: float = 0.5
    volume_threshold: float = 0.01
    similarity_threshold: float = 0.5
    stream_segments: bool = True
    vocabulary_path: str = ""
    extra_blacklist: Tuple[str, ...] = field(default_factory=tuple)

    def redacted(self) -> Dict[str, Any]:
        out = dict(self.__dict__)
        if out.get("api_key"):
            out["api_key"] = "***"
        return out


def apply_config_file(settings: PipelineSettings, path: str) -> PipelineSettings:
    """Overlay ``{"apiKey", "serverUrl", "modelName"}`` from a JSON file.

    Blank values and the placeholder key are ignored. A missing or broken file
    is logged and leaves ``settings`` untouched.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        logger.info("Config file %s not found; using environment settings", path)
        return settings
    except (OSError, ValueError) as e:
        logger.warning("Could not read config file %s: %s", path, e)
        return settings
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a JSON object", path)
        return settings

    changes: Dict[str, Any] = {}
    api_key = (data.get("apiKey") or "").strip()
    if api_key and api_key != API_KEY_PLACEHOLDER:
        changes["api_key"] = api_key
    if (data.get("serverUrl") or "").strip():
        changes["server_url"] = data["serverUrl"].strip()
    if (data.get("modelName") or "").strip():
        changes["model_name"] = data["modelName"].strip()
    logger.info("Loaded %s from %s", sorted(changes) or "nothing", path)
    return replace(settings, **changes)


def use_university_server(settings: PipelineSettings) -> PipelineSettings:
    return replace(settings, server_url=UNIVERSITY_SERVER_URL, model_name="", api_key="")


def settings_from_env(dotenv_path: Optional[str] = None) -> PipelineSettings:
    load_dotenv(dotenv_path=dotenv_path, override=False)

    local_timeout = _env_float("LOCAL_TIMEOUT_S", 60.0)
    settings = PipelineSettings(
        backend=_env_str("VOICE_BACKEND", "remote").lower(),
        server_url=_env_str("WHISPER_SERVER_URL", DEFAULT_SERVER_URL),
        model_name=_env_str("WHISPER_MODEL", DEFAULT_MODEL),
        api_key=_env_str("WHISPER_API_KEY") or _env_str("GROQ_API_KEY"),
        timeout_s=_env_float("WHISPER_TIMEOUT_S", 30.0),
        language=_env_str("WHISPER_LANGUAGE"),
        local_model_size=_env_str("LOCAL_MODEL_SIZE", "base.en"),
        local_device=_env_str("LOCAL_MODEL_DEVICE", "cpu"),
        local_compute_type=_env_str("LOCAL_MODEL_COMPUTE_TYPE", "int8"),
        local_timeout_s=local_timeout if local_timeout > 0 else None,
        local_language=_env_str("LOCAL_LANGUAGE", "en"),
        gain=_env_float("AUDIO_GAIN", 4.0),
        min_record_s=_env_float("MIN_RECORD_S", 0.5),
        volume_threshold=_env_float("VOLUME_THRESHOLD", 0.01),
        similarity_threshold=_env_float("SIMILARITY_THRESHOLD", 0.5),
        stream_segments=_env_bool("STREAM_SEGMENTS", True),
        vocabulary_path=_env_str("COMMAND_VOCABULARY_PATH"),
        extra_blacklist=_env_list("TRANSCRIPT_BLACKLIST"),
    )

    config_path = _env_str("VOICE_CONFIG_PATH")
    if config_path:
        settings = apply_config_file(settings, config_path)
    if _env_bool("USE_UNIVERSITY_SERVER", False):
        settings = use_university_server(settings)

    check_settings(settings)
    return settings


def check_settings(settings: PipelineSettings) -> None:
    if settings.backend not in BACKENDS:
        raise ConfigurationError(f"VOICE_BACKEND must be one of {BACKENDS}, got {settings.backend!r}")
    if not 0.0 <= settings.similarity_threshold <= 1.0:
        raise ConfigurationError(f"SIMILARITY_THRESHOLD must be within [0, 1], got {settings.similarity_threshold}")
    if settings.timeout_s <= 0:
        raise ConfigurationError(f"WHISPER_TIMEOUT_S must be positive, got {settings.timeout_s}")
