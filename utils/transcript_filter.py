"""
Gate between the transcription backend and command matching.
Drops blank transcripts and the markers Whisper emits for silence or
non-speech audio.
"""

from __future__ import annotations
import logging
from typing import Iterable, Optional, Tuple

from core.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BLACKLIST: Tuple[str, ...] = (
    "[BLANK_AUDIO]",
    "(BLANK_AUDIO)",
    "BLANK_AUDIO",
    "[BELL_RINGING]",
    "click",
)


def validate(text: Optional[str], blacklist: Iterable[str] = DEFAULT_BLACKLIST) -> str:
    """Return the stripped transcript or raise :class:`ValidationError`."""
    if text is None or not text.strip():
        raise ValidationError("blank")
    lowered = text.lower()
    for artifact in blacklist:
        if artifact and artifact.lower() in lowered:
            raise ValidationError("blacklisted", artifact)
    return text.strip()


class TranscriptFilter:
    def __init__(self, extra_artifacts: Iterable[str] = ()) -> None:
        merged = list(DEFAULT_BLACKLIST)
        for a in extra_artifacts:
            a = (a or "").strip()
            if a and a not in merged:
                merged.append(a)
        self._blacklist: Tuple[str, ...] = tuple(merged)

    @property
    def blacklist(self) -> Tuple[str, ...]:
        return self._blacklist

    def validate(self, text: Optional[str]) -> str:
        try:
            return validate(text, self._blacklist)
        except ValidationError as e:
            logger.info("Transcript rejected (%s): %r", e, (text or "")[:80])
            raise
