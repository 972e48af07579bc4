from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Literal

OutcomeStatus = Literal["command", "no_command", "rejected", "failed", "busy", "skipped"]
MatchPhase = Literal["exact", "fuzzy"]


@dataclass(frozen=True)
class AudioSegment:
    samples: Tuple[float, ...]    # interleaved floats, nominal [-1, 1]
    sample_rate: int
    channels: int = 1

    @classmethod
    def from_samples(cls, samples, sample_rate: int, channels: int = 1) -> "AudioSegment":
        return cls(samples=tuple(float(s) for s in samples), sample_rate=int(sample_rate), channels=int(channels))

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0 or self.channels <= 0:
            return 0.0
        return len(self.samples) / float(self.sample_rate * self.channels)


@dataclass(frozen=True)
class BackendConfig:
    endpoint: str = ""
    model: str = ""
    api_key: str = ""
    timeout_s: Optional[float] = 30.0
    language: Optional[str] = None


@dataclass(frozen=True)
class TranscriptionRequest:
    segment: AudioSegment
    config: BackendConfig


@dataclass(frozen=True)
class TranscriptSegment:
    id: int
    start: float
    end: float
    text: str


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    language: str = "unknown"
    duration: Optional[float] = None
    segments: Tuple[TranscriptSegment, ...] = ()
    provider: str = ""


@dataclass(frozen=True)
class MatchResult:
    command: str
    similarity: float             # [0, 1]
    phase: MatchPhase
    token: str = ""
    variant: str = ""


class PipelineState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING_BACKEND = "awaiting_backend"
    VALIDATING = "validating"
    MATCHING = "matching"


@dataclass(frozen=True)
class UtteranceOutcome:
    status: OutcomeStatus
    command: Optional[str] = None
    text: str = ""
    language: Optional[str] = None
    error: Optional[str] = None
    match: Optional[MatchResult] = None
    elapsed_s: float = 0.0
    meta: dict = field(default_factory=dict)

    @property
    def emitted(self) -> bool:
        return self.status == "command" and self.command is not None
