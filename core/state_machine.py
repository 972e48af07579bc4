from __future__ import annotations
import logging
import time
from typing import Any, Dict, List, Optional

from core.command_matcher import CommandMatcher
from core.errors import NoMatchFound, TransportError, ValidationError
from core.types import AudioSegment, PipelineState, TranscriptionRequest, UtteranceOutcome
from core.wav_norm import amplify, average_volume
from event_bus import EventBus, ON_COMMAND, ON_TRANSCRIPT, ON_TRANSCRIPTION_FAILED
from metrics import BACKEND_ERRORS, BACKEND_LATENCY, MATCH_PHASE, UTTERANCE_OUTCOMES
from providers.base import SegmentCallback, TranscriptionProvider
from utils.transcript_filter import TranscriptFilter

logger = logging.getLogger(__name__)

_VALID_TRANSITIONS: Dict[PipelineState, tuple] = {
    PipelineState.IDLE: (PipelineState.DISPATCHING,),
    PipelineState.DISPATCHING: (PipelineState.AWAITING_BACKEND, PipelineState.IDLE),
    PipelineState.AWAITING_BACKEND: (PipelineState.VALIDATING, PipelineState.IDLE),
    PipelineState.VALIDATING: (PipelineState.MATCHING, PipelineState.IDLE),
    PipelineState.MATCHING: (PipelineState.IDLE,),
}

_MAX_HISTORY = 50


class InvalidTransitionError(RuntimeError):
    def __init__(self, from_state: PipelineState, to_state: PipelineState) -> None:
        super().__init__(f"Invalid transition {from_state.value} -> {to_state.value}")
        self.from_state = from_state
        self.to_state = to_state


class CommandPipeline:
    """
    Single-utterance pipeline:
      segment -> amplify -> backend (await) -> validate -> match -> command event
    Only the backend call suspends. One utterance at a time: a segment that
    arrives while another is in flight is answered with a ``busy`` outcome.
    Every per-utterance failure ends in IDLE with no command emitted.
    """

    def __init__(self, provider: TranscriptionProvider,
                 matcher: Optional[CommandMatcher] = None,
                 transcript_filter: Optional[TranscriptFilter] = None,
                 *,
                 gain: float = 1.0,
                 min_record_s: float = 0.0,
                 volume_threshold: float = 0.0,
                 stream_segments: bool = True,
                 bus: Optional[EventBus] = None) -> None:
        self._provider = provider
        self._matcher = matcher or CommandMatcher()
        self._filter = transcript_filter or TranscriptFilter()
        self.gain = gain
        self.min_record_s = min_record_s
        self.volume_threshold = volume_threshold
        self.stream_segments = stream_segments
        self.bus = bus or EventBus()
        self._state = PipelineState.IDLE
        self._partial: List[str] = []
        self._history: List[Dict[str, Any]] = []
        self._closed = False
        self._seq = 0
        self._active_seq: Optional[int] = None

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def provider(self) -> TranscriptionProvider:
        return self._provider

    @property
    def matcher(self) -> CommandMatcher:
        return self._matcher

    @property
    def partial_transcript(self) -> str:
        return "".join(self._partial)

    @property
    def closed(self) -> bool:
        return self._closed

    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def _transition(self, new_state: PipelineState, reason: str = "") -> None:
        from_state = self._state
        if new_state not in _VALID_TRANSITIONS.get(from_state, ()):
            raise InvalidTransitionError(from_state, new_state)
        self._state = new_state
        self._history.append({"from": from_state.value, "to": new_state.value,
                              "reason": reason, "timestamp": time.time()})
        if len(self._history) > _MAX_HISTORY:
            self._history.pop(0)
        logger.debug("Pipeline: %s -> %s%s", from_state.value, new_state.value,
                     f" [{reason}]" if reason else "")

    def begin_recording(self) -> bool:
        """True when a new recording may start (pipeline idle and open)."""
        if self._closed:
            return False
        if self._state is not PipelineState.IDLE:
            logger.info("Recording refused: utterance still %s", self._state.value)
            return False
        return True

    def close(self) -> None:
        """Stop emitting. A transcription still outstanding is ignored when it lands."""
        self._closed = True
        self.bus.clear()

    def _segment_sink(self, seq: int) -> SegmentCallback:
        """Accumulator writer bound to one utterance; later calls are dropped."""
        def sink(text: str) -> None:
            if seq != self._active_seq:
                logger.debug("Dropping late segment from utterance %d: %r", seq, text)
                return
            self._partial.append(text)
            logger.debug("Partial transcript: %s", self.partial_transcript)
        return sink

    def _skip_reason(self, segment: AudioSegment) -> Optional[str]:
        if not segment.samples or segment.sample_rate <= 0 or segment.channels <= 0:
            return "empty"
        if self.min_record_s > 0 and segment.duration_s < self.min_record_s:
            return "too_short"
        if self.volume_threshold > 0 and average_volume(segment.samples) < self.volume_threshold:
            return "too_quiet"
        return None

    # -- utterance ---------------------------------------------------------

    async def process(self, segment: AudioSegment) -> UtteranceOutcome:
        if self._closed:
            return self._finish(UtteranceOutcome(status="failed", error="closed"))
        if self._state is not PipelineState.IDLE:
            logger.warning("Utterance rejected: pipeline busy (%s)", self._state.value)
            return self._finish(UtteranceOutcome(status="busy", error=f"pipeline {self._state.value}"))

        t0 = time.perf_counter()
        self._transition(PipelineState.DISPATCHING, "utterance")
        self._partial = []
        self._seq += 1
        self._active_seq = self._seq
        try:
            return self._finish(await self._run(segment, t0))
        finally:
            self._active_seq = None
            if self._state is not PipelineState.IDLE:
                self._transition(PipelineState.IDLE, "done")

    async def _run(self, segment: AudioSegment, t0: float) -> UtteranceOutcome:
        skip = self._skip_reason(segment)
        if skip:
            logger.info("Utterance skipped (%s, %.2fs)", skip, segment.duration_s)
            return UtteranceOutcome(status="skipped", error=skip,
                                    meta={"reason": skip, "duration_s": segment.duration_s})

        conditioned = AudioSegment(
            samples=tuple(amplify(segment.samples, self.gain)),
            sample_rate=segment.sample_rate,
            channels=segment.channels,
        )
        request = TranscriptionRequest(segment=conditioned, config=self._provider.config)

        self._transition(PipelineState.AWAITING_BACKEND, self._provider.name)
        provider = self._provider.name
        t_backend = time.perf_counter()
        try:
            result = await self._provider.transcribe(
                request, on_segment=self._segment_sink(self._seq) if self.stream_segments else None)
        except TransportError as e:
            BACKEND_ERRORS.labels(provider=provider, kind=e.kind).inc()
            logger.error("Transcription failed (%s): %s", provider, e)
            return self._failed(str(e), t0)
        except Exception as e:
            BACKEND_ERRORS.labels(provider=provider, kind="unexpected").inc()
            logger.error("Transcription crashed (%s): %s", provider, e, exc_info=True)
            return self._failed(f"{e.__class__.__name__}: {e}", t0)
        finally:
            BACKEND_LATENCY.labels(provider=provider).observe(time.perf_counter() - t_backend)

        if self._closed:
            logger.info("Pipeline closed while awaiting backend; dropping result")
            return UtteranceOutcome(status="failed", error="closed", text=result.text,
                                    elapsed_s=time.perf_counter() - t0)

        self._transition(PipelineState.VALIDATING)
        try:
            text = self._filter.validate(result.text)
        except ValidationError as e:
            return UtteranceOutcome(status="rejected", text=result.text, language=result.language,
                                    error=str(e), elapsed_s=time.perf_counter() - t0,
                                    meta={"reason": e.reason, "artifact": e.artifact})

        logger.info("Transcript (%s, %s): %s", provider, result.language, text)
        self.bus.emit(ON_TRANSCRIPT, {"text": text, "language": result.language, "provider": provider})

        self._transition(PipelineState.MATCHING)
        match = self._matcher.match(text)
        if match is None:
            best = self._matcher.best_candidate(text)
            best_similarity = best.similarity if best else 0.0
            logger.info("%s", NoMatchFound(text, best_similarity))
            return UtteranceOutcome(status="no_command", text=text, language=result.language,
                                    elapsed_s=time.perf_counter() - t0,
                                    meta={"best_similarity": best_similarity,
                                          "best_command": best.command if best else None})

        MATCH_PHASE.labels(phase=match.phase).inc()
        logger.info("Command: %s (%s, similarity=%.2f)", match.command, match.phase, match.similarity)
        self.bus.emit(ON_COMMAND, {"command": match.command, "match": match, "text": text})
        return UtteranceOutcome(status="command", command=match.command, text=text,
                                language=result.language, match=match,
                                elapsed_s=time.perf_counter() - t0)

    def _failed(self, error: str, t0: float) -> UtteranceOutcome:
        if not self._closed:
            self.bus.emit(ON_TRANSCRIPTION_FAILED, {"error": error, "provider": self._provider.name})
        return UtteranceOutcome(status="failed", error=error, elapsed_s=time.perf_counter() - t0)

    def _finish(self, outcome: UtteranceOutcome) -> UtteranceOutcome:
        UTTERANCE_OUTCOMES.labels(status=outcome.status).inc()
        return outcome
