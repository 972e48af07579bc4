from __future__ import annotations
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.errors import ConfigurationError, ParseError, TransportError
from core.types import BackendConfig, TranscriptionRequest, TranscriptionResult, TranscriptSegment
from providers.base import SegmentCallback, TranscriptionProvider
from utils.wav_encoder import encode_wav

logger = logging.getLogger(__name__)


class ServerErrorDetail:
    """``{"error": {"message", "type", "param", "code"}}`` body of a failed call."""

    __slots__ = ("message", "type", "param", "code")

    def __init__(self, message: str = "", type: Optional[str] = None,
                 param: Optional[str] = None, code: Optional[str] = None) -> None:
        self.message = message
        self.type = type
        self.param = param
        self.code = code

    @classmethod
    def parse(cls, body: str) -> Optional["ServerErrorDetail"]:
        try:
            data = json.loads(body)
        except (TypeError, ValueError):
            return None
        err = data.get("error") if isinstance(data, dict) else None
        if not isinstance(err, dict):
            return None
        return cls(
            message=str(err.get("message") or ""),
            type=err.get("type"),
            param=err.get("param"),
            code=None if err.get("code") is None else str(err.get("code")),
        )

    def __repr__(self) -> str:
        return f"ServerErrorDetail(message={self.message!r}, type={self.type!r}, code={self.code!r})"


def _diagnose(status_code: int, detail: Optional[ServerErrorDetail]) -> Optional[str]:
    message = detail.message if detail else ""
    if "Unmapped provider" in message:
        return "unmapped provider: the server does not route this model name"
    if "Incorrect API key" in message or "invalid_api_key" in message or status_code == 401:
        return "invalid api key"
    return None


def _normalize_segments(raw: Any) -> Tuple[TranscriptSegment, ...]:
    out: List[TranscriptSegment] = []
    if not isinstance(raw, list):
        return ()
    for idx, s in enumerate(raw):
        if not isinstance(s, dict):
            continue
        try:
            start = float(s.get("start", 0.0) or 0.0)
            end = float(s.get("end", start) or start)
            seg_id = int(s.get("id", idx))
        except (TypeError, ValueError):
            continue
        out.append(TranscriptSegment(id=seg_id, start=start, end=end, text=(s.get("text") or "").strip()))
    return tuple(out)


class RemoteWhisperProvider(TranscriptionProvider):
    """OpenAI-compatible ``/audio/transcriptions`` endpoint (Groq, LiteLLM, self-hosted)."""

    name = "remote"

    def __init__(self, config: BackendConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client
        self.validate()

    def validate(self) -> None:
        if not (self.config.endpoint or "").strip():
            raise ConfigurationError("remote backend selected but no server URL is configured")
        if not self.config.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(f"remote server URL must be http(s): {self.config.endpoint!r}")
        if not self.config.api_key:
            logger.warning("Remote backend has no API key configured; sending unauthenticated requests")

    def _build_form(self, request: TranscriptionRequest) -> Tuple[Dict[str, Any], Dict[str, str], Dict[str, str]]:
        seg = request.segment
        cfg = request.config
        wav = encode_wav(seg.samples, seg.sample_rate, seg.channels)
        files = {"file": ("audio.wav", wav, "audio/wav")}
        data: Dict[str, str] = {}
        if cfg.model:
            data["model"] = cfg.model
        if cfg.language:
            data["language"] = cfg.language
        headers: Dict[str, str] = {}
        if cfg.api_key:
            headers["Authorization"] = f"Bearer {cfg.api_key}"
        return files, data, headers

    async def _post(self, url: str, timeout: httpx.Timeout, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, timeout=timeout, **kwargs)
        async with httpx.AsyncClient(timeout=timeout) as cli:
            return await cli.post(url, **kwargs)

    async def transcribe(self, request: TranscriptionRequest,
                         on_segment: Optional[SegmentCallback] = None) -> TranscriptionResult:
        cfg = request.config
        url = cfg.endpoint or self.config.endpoint
        files, data, headers = self._build_form(request)
        timeout = httpx.Timeout(cfg.timeout_s)

        logger.info(f"Remote transcription request: url={url}, model={cfg.model or '-'}, "
                    f"duration={request.segment.duration_s:.2f}s, timeout={cfg.timeout_s}s")
        t0 = time.perf_counter()
        try:
            r = await self._post(url, timeout, files=files, data=data, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(f"timeout after {cfg.timeout_s}s", detail=str(e) or None) from e
        except httpx.HTTPError as e:
            raise TransportError(f"request failed: {e.__class__.__name__}", detail=str(e) or None) from e

        logger.info(f"Remote transcription response: status={r.status_code} in {time.perf_counter() - t0:.2f}s")

        if r.status_code >= 300:
            raise self._error_from_response(r)
        result = self._parse_success(r)
        if on_segment is not None:
            for seg in result.segments:
                on_segment(seg.text)
        return result

    def _error_from_response(self, r: httpx.Response) -> TransportError:
        body = r.text or ""
        detail = ServerErrorDetail.parse(body)
        hint = _diagnose(r.status_code, detail)
        if detail is not None:
            logger.error(f"Remote HTTP {r.status_code}: {detail!r}")
            text = detail.message or body
        else:
            logger.error(f"Remote HTTP {r.status_code}: {body[:500]}")
            text = body
        return TransportError(f"HTTP {r.status_code}", status_code=r.status_code, detail=text, hint=hint)

    def _parse_success(self, r: httpx.Response) -> TranscriptionResult:
        try:
            payload = r.json()
        except ValueError as e:
            raise ParseError("response is not JSON", status_code=r.status_code, detail=r.text[:500]) from e
        if not isinstance(payload, dict):
            raise ParseError("response is not a JSON object", status_code=r.status_code, detail=r.text[:500])

        text = payload.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ParseError("response has no text", status_code=r.status_code, detail=r.text[:500])

        duration = payload.get("duration")
        try:
            duration = None if duration is None else float(duration)
        except (TypeError, ValueError):
            duration = None

        return TranscriptionResult(
            text=text.strip(),
            language=payload.get("language") or "unknown",
            duration=duration,
            segments=_normalize_segments(payload.get("segments")),
            provider=self.name,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
