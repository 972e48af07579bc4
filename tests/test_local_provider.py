import asyncio
import os
import sys
import time

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from core.errors import ConfigurationError, ParseError, TransportError
from core.types import AudioSegment, BackendConfig, TranscriptionRequest, TranscriptSegment
from providers.local_provider import LocalWhisperProvider


class _StubModel:
    def __init__(self, out=None, delay=0.0, error=None, parts=()):
        self.out = out if out is not None else ("  swort  ", "en", [TranscriptSegment(0, 0.0, 0.5, "swort")])
        self.delay = delay
        self.error = error
        self.parts = parts
        self.calls = []

    def transcribe(self, samples, sample_rate, channels, language=None, on_segment=None):
        self.calls.append((len(samples), sample_rate, channels, language))
        for p in self.parts:
            if on_segment is not None:
                on_segment(p)
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.out


def _request(provider):
    segment = AudioSegment.from_samples([0.1] * 1600, 16000, 1)
    return TranscriptionRequest(segment, provider.config)


def test_local_model_result_is_wrapped():
    model = _StubModel()
    provider = LocalWhisperProvider(model)

    result = asyncio.run(provider.transcribe(_request(provider)))

    assert result.text == "swort"
    assert result.language == "en"
    assert result.provider == "local"
    assert result.duration == pytest.approx(0.1)
    assert model.calls == [(1600, 16000, 1, "en")]


def test_partial_segments_are_relayed_to_loop():
    provider = LocalWhisperProvider(_StubModel(parts=(" give", " me", " the axe")))
    seen = []

    async def go():
        return await provider.transcribe(_request(provider), on_segment=seen.append)

    asyncio.run(go())
    assert seen == [" give", " me", " the axe"]


def test_plain_string_output_is_accepted():
    provider = LocalWhisperProvider(_StubModel(out="mace"),
                                    BackendConfig(timeout_s=5.0, language=None))
    result = asyncio.run(provider.transcribe(_request(provider)))
    assert result.text == "mace"
    assert result.language == "unknown"


def test_empty_text_is_parse_error():
    provider = LocalWhisperProvider(_StubModel(out=("   ", "en", [])))
    with pytest.raises(ParseError):
        asyncio.run(provider.transcribe(_request(provider)))


def test_model_crash_is_transport_error():
    provider = LocalWhisperProvider(_StubModel(error=RuntimeError("cuda out of memory")))
    with pytest.raises(TransportError) as exc:
        asyncio.run(provider.transcribe(_request(provider)))
    assert "cuda out of memory" in exc.value.detail


def test_stalled_model_hits_bounded_wait():
    provider = LocalWhisperProvider(_StubModel(delay=0.5), BackendConfig(timeout_s=0.05, language="en"))
    with pytest.raises(TransportError, match="timeout"):
        asyncio.run(provider.transcribe(_request(provider)))


def test_missing_model_fails_fast():
    with pytest.raises(ConfigurationError):
        LocalWhisperProvider(None)
    with pytest.raises(ConfigurationError):
        LocalWhisperProvider(object())


class _LateSegmentModel:
    def transcribe(self, samples, sample_rate, channels, language=None, on_segment=None):
        time.sleep(0.2)
        on_segment("too late")
        return "too late", "en", []


def test_segments_after_timeout_are_not_relayed():
    provider = LocalWhisperProvider(_LateSegmentModel(), BackendConfig(timeout_s=0.05, language="en"))
    seen = []

    async def go():
        with pytest.raises(TransportError, match="timeout"):
            await provider.transcribe(_request(provider), on_segment=seen.append)
        await asyncio.sleep(0.4)

    asyncio.run(go())
    assert seen == []
