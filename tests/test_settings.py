import json
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import settings as settings_mod
from app.settings import (API_KEY_PLACEHOLDER, DEFAULT_SERVER_URL, UNIVERSITY_SERVER_URL,
                          PipelineSettings, apply_config_file, settings_from_env)
from core.errors import ConfigurationError

_ENV_KEYS = (
    "VOICE_BACKEND", "WHISPER_SERVER_URL", "WHISPER_MODEL", "WHISPER_API_KEY", "GROQ_API_KEY",
    "WHISPER_TIMEOUT_S", "WHISPER_LANGUAGE", "LOCAL_TIMEOUT_S", "AUDIO_GAIN", "MIN_RECORD_S",
    "VOLUME_THRESHOLD", "SIMILARITY_THRESHOLD", "STREAM_SEGMENTS", "COMMAND_VOCABULARY_PATH",
    "TRANSCRIPT_BLACKLIST", "VOICE_CONFIG_PATH", "USE_UNIVERSITY_SERVER",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(settings_mod, "load_dotenv", lambda **kwargs: False)


def test_defaults():
    s = settings_from_env()
    assert s.backend == "remote"
    assert s.server_url == DEFAULT_SERVER_URL
    assert s.gain == 4.0
    assert s.similarity_threshold == 0.5
    assert s.min_record_s == 0.5
    assert s.volume_threshold == 0.01
    assert s.local_timeout_s == 60.0
    assert s.stream_segments is True


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("VOICE_BACKEND", "LOCAL")
    monkeypatch.setenv("AUDIO_GAIN", "2.5")
    monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.7")
    monkeypatch.setenv("STREAM_SEGMENTS", "off")
    monkeypatch.setenv("LOCAL_TIMEOUT_S", "0")
    monkeypatch.setenv("TRANSCRIPT_BLACKLIST", "Thanks for watching, [MUSIC] ,")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-fallback")

    s = settings_from_env()
    assert s.backend == "local"
    assert s.gain == 2.5
    assert s.similarity_threshold == 0.7
    assert s.stream_segments is False
    assert s.local_timeout_s is None
    assert s.extra_blacklist == ("Thanks for watching", "[MUSIC]")
    assert s.api_key == "gsk-fallback"


def test_invalid_number_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("AUDIO_GAIN", "loud")
    assert settings_from_env().gain == 4.0


@pytest.mark.parametrize("key,value", [("VOICE_BACKEND", "cloud"), ("SIMILARITY_THRESHOLD", "1.5"),
                                       ("WHISPER_TIMEOUT_S", "0")])
def test_bad_settings_raise_configuration_error(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigurationError):
        settings_from_env()


def test_config_file_overlay(tmp_path, monkeypatch):
    path = tmp_path / "groq_config.json"
    path.write_text(json.dumps({"apiKey": "gsk-file", "serverUrl": "https://llm.test/v1/audio/transcriptions",
                                "modelName": ""}), encoding="utf-8")
    monkeypatch.setenv("VOICE_CONFIG_PATH", str(path))

    s = settings_from_env()
    assert s.api_key == "gsk-file"
    assert s.server_url == "https://llm.test/v1/audio/transcriptions"
    assert s.model_name == "whisper-large-v3"


def test_placeholder_key_is_ignored(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"apiKey": API_KEY_PLACEHOLDER}), encoding="utf-8")
    base = PipelineSettings(api_key="env-key")
    assert apply_config_file(base, str(path)).api_key == "env-key"


def test_missing_or_broken_config_file_keeps_settings(tmp_path):
    base = PipelineSettings()
    assert apply_config_file(base, str(tmp_path / "nope.json")) == base
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert apply_config_file(base, str(broken)) == base


def test_university_server_preset(monkeypatch):
    monkeypatch.setenv("WHISPER_API_KEY", "secret")
    monkeypatch.setenv("USE_UNIVERSITY_SERVER", "true")
    s = settings_from_env()
    assert s.server_url == UNIVERSITY_SERVER_URL
    assert s.model_name == ""
    assert s.api_key == ""


def test_redacted_hides_key():
    assert PipelineSettings(api_key="secret").redacted()["api_key"] == "***"
