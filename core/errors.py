from __future__ import annotations
from typing import Optional


class PipelineError(Exception):
    """Base class for voice-command pipeline errors."""


class TransportError(PipelineError):
    """Network failure, non-success HTTP status, timeout or backend crash."""

    def __init__(self, message: str, *, status_code: Optional[int] = None,
                 detail: Optional[str] = None, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.hint = hint

    @property
    def kind(self) -> str:
        return "transport"

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.hint:
            parts.append(f"hint={self.hint}")
        if self.detail:
            parts.append(f"detail={self.detail[:300]}")
        return " ".join(parts)


class ParseError(TransportError):
    """Malformed or schema-violating backend response."""

    @property
    def kind(self) -> str:
        return "parse"


class ValidationError(PipelineError):
    """Transcript is blank or a known transcription artifact."""

    def __init__(self, reason: str, artifact: Optional[str] = None) -> None:
        msg = reason if artifact is None else f"{reason}: {artifact}"
        super().__init__(msg)
        self.reason = reason
        self.artifact = artifact


class NoMatchFound(PipelineError):
    """Matching finished without any candidate reaching the threshold."""

    def __init__(self, text: str, best_similarity: float = 0.0) -> None:
        super().__init__(f"no command for {text!r} (best={best_similarity:.3f})")
        self.text = text
        self.best_similarity = best_similarity


class ConfigurationError(PipelineError):
    """Required backend dependency missing or invalid at setup."""
