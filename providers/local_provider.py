from __future__ import annotations
import asyncio
import logging
import threading
import time
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from core.errors import ConfigurationError, ParseError, TransportError
from core.types import BackendConfig, TranscriptionRequest, TranscriptionResult, TranscriptSegment
from providers.base import SegmentCallback, TranscriptionProvider

logger = logging.getLogger(__name__)

# What an embedded model returns: (text, language, segments)
LocalTranscript = Tuple[str, Optional[str], Sequence[TranscriptSegment]]

WHISPER_SAMPLE_RATE = 16000


def _to_mono16k(samples: Sequence[float], sample_rate: int, channels: int):
    import numpy as np  # type: ignore

    audio = np.asarray(samples, dtype=np.float32)
    if channels > 1:
        usable = (audio.size // channels) * channels
        audio = audio[:usable].reshape(-1, channels).mean(axis=1)
    if sample_rate and sample_rate != WHISPER_SAMPLE_RATE and audio.size:
        n_out = max(1, int(round(audio.size * WHISPER_SAMPLE_RATE / float(sample_rate))))
        src_t = np.linspace(0.0, 1.0, num=audio.size, endpoint=False)
        dst_t = np.linspace(0.0, 1.0, num=n_out, endpoint=False)
        audio = np.interp(dst_t, src_t, audio).astype(np.float32)
    return audio


class FasterWhisperModel:
    """Adapter exposing a faster-whisper ``WhisperModel`` through the local model contract."""

    def __init__(self, model_size: str = "base.en", device: str = "cpu", compute_type: str = "int8",
                 beam_size: int = 5) -> None:
        try:
            from faster_whisper import WhisperModel  # type: ignore
        except ImportError as e:
            raise ConfigurationError("local backend selected but faster-whisper is not installed") from e
        logger.info(f"Loading local whisper model: size={model_size}, device={device}, compute_type={compute_type}")
        self._model = WhisperModel(model_size, device=device, compute_type=compute_type)
        self.model_size = model_size
        self.beam_size = beam_size

    def transcribe(self, samples: Sequence[float], sample_rate: int, channels: int,
                   language: Optional[str] = None,
                   on_segment: Optional[SegmentCallback] = None) -> LocalTranscript:
        audio = _to_mono16k(samples, sample_rate, channels)
        segments_iter, info = self._model.transcribe(audio, language=language or None, beam_size=self.beam_size)
        parts: List[str] = []
        segments: List[TranscriptSegment] = []
        for idx, seg in enumerate(segments_iter):
            parts.append(seg.text)
            segments.append(TranscriptSegment(id=idx, start=float(seg.start), end=float(seg.end), text=seg.text.strip()))
            if on_segment is not None:
                on_segment(seg.text)
        return "".join(parts), getattr(info, "language", None), segments


class LocalWhisperProvider(TranscriptionProvider):
    """Runs an embedded model in a worker thread with a bounded wait.

    The model call blocks until it is done; the thread keeps the event loop
    free and ``timeout_s`` turns a stalled model into a TransportError. The
    stalled thread itself cannot be interrupted, its result is dropped.
    """

    name = "local"

    def __init__(self, model: Any, config: Optional[BackendConfig] = None) -> None:
        self.model = model
        self.config = config or BackendConfig(timeout_s=60.0, language="en")
        self.validate()

    def validate(self) -> None:
        if self.model is None:
            raise ConfigurationError("local backend selected but no model instance is available")
        if not callable(getattr(self.model, "transcribe", None)):
            raise ConfigurationError(f"local model {type(self.model).__name__} has no transcribe()")

    def _run_model(self, request: TranscriptionRequest,
                   on_segment: Optional[SegmentCallback]) -> LocalTranscript:
        seg = request.segment
        return self.model.transcribe(seg.samples, seg.sample_rate, seg.channels,
                                     language=request.config.language, on_segment=on_segment)

    async def transcribe(self, request: TranscriptionRequest,
                         on_segment: Optional[SegmentCallback] = None) -> TranscriptionResult:
        loop = asyncio.get_running_loop()
        abandoned = threading.Event()
        relay: Optional[SegmentCallback] = None
        if on_segment is not None:
            # model threads hand segments back to the loop thread
            def relay(text: str) -> None:
                if not abandoned.is_set():
                    loop.call_soon_threadsafe(on_segment, text)

        timeout = request.config.timeout_s
        t0 = time.perf_counter()
        try:
            out = await asyncio.wait_for(asyncio.to_thread(self._run_model, request, relay), timeout=timeout)
        except asyncio.TimeoutError as e:
            abandoned.set()
            logger.warning(f"Local model did not finish within {timeout}s; result will be ignored")
            raise TransportError(f"timeout after {timeout}s") from e
        except asyncio.CancelledError:
            abandoned.set()
            raise
        except (ConfigurationError, TransportError):
            raise
        except Exception as e:
            logger.error(f"Local model failed: {e}", exc_info=True)
            raise TransportError(f"local model error: {e.__class__.__name__}", detail=str(e) or None) from e

        text, language, segments = self._unpack(out)
        logger.info(f"Local transcription finished in {time.perf_counter() - t0:.2f}s")
        if not text.strip():
            raise ParseError("local model returned no text")
        return TranscriptionResult(
            text=text.strip(),
            language=language or request.config.language or "unknown",
            duration=request.segment.duration_s,
            segments=tuple(segments),
            provider=self.name,
        )

    @staticmethod
    def _unpack(out: Any) -> Tuple[str, Optional[str], Iterable[TranscriptSegment]]:
        if isinstance(out, str):
            return out, None, ()
        try:
            text, language, segments = out
        except (TypeError, ValueError) as e:
            raise ParseError(f"unexpected local model output: {type(out).__name__}") from e
        if not isinstance(text, str):
            raise ParseError(f"local model text is {type(text).__name__}, expected str")
        return text, language, segments or ()
