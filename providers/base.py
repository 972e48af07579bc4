from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable, Optional
from core.types import BackendConfig, TranscriptionRequest, TranscriptionResult

SegmentCallback = Callable[[str], None]


class TranscriptionProvider(ABC):
    """Send audio, get text.

    ``transcribe`` raises :class:`core.errors.TransportError` or
    :class:`core.errors.ParseError`; it never returns an empty transcript.
    """

    name: str
    config: BackendConfig

    @abstractmethod
    def validate(self) -> None:
        """Raise ConfigurationError when the provider cannot be used."""
        ...

    @abstractmethod
    async def transcribe(self, request: TranscriptionRequest,
                         on_segment: Optional[SegmentCallback] = None) -> TranscriptionResult:
        ...

    async def aclose(self) -> None:
        return None
