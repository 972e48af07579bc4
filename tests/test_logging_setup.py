import io
import json
import logging
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.logging_setup import JsonFormatter, RedactFilter


def _record(msg, args=()):
    return logging.LogRecord("voice", logging.INFO, __file__, 10, msg, args, None)


def test_bearer_token_is_redacted():
    rec = _record("headers: Authorization: Bearer gsk_abc123.def")
    RedactFilter().filter(rec)
    assert "gsk_abc123" not in rec.getMessage()
    assert "***REDACTED***" in rec.getMessage()


def test_key_value_pairs_in_args_are_redacted():
    rec = _record("settings %s", ("api_key=sk-live-42, model=whisper-large-v3",))
    RedactFilter().filter(rec)
    msg = rec.getMessage()
    assert "sk-live-42" not in msg
    assert "model=whisper-large-v3" in msg


def test_plain_messages_pass_through():
    rec = _record("Matched command %s", ("sword",))
    assert RedactFilter().filter(rec) is True
    assert rec.getMessage() == "Matched command sword"


def test_json_formatter_carries_utterance_id():
    rec = _record("dispatching")
    rec.utterance_id = "u-7"
    out = json.loads(JsonFormatter().format(rec))
    assert out["message"] == "dispatching"
    assert out["utterance_id"] == "u-7"
    assert out["level"] == "INFO"


def test_numeric_args_keep_their_format():
    rec = _record("Command: %s (%s, similarity=%.2f, took %dms)", ("sword", "fuzzy", 0.6, 42))
    RedactFilter().filter(rec)
    assert rec.getMessage() == "Command: sword (fuzzy, similarity=0.60, took 42ms)"


def test_handler_with_filter_emits_numeric_lines():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RedactFilter())
    log = logging.getLogger("voice.redact.numeric")
    log.propagate = False
    log.addHandler(handler)
    log.setLevel(logging.INFO)
    try:
        log.info("Voice pipeline ready: threshold=%.2f", 0.5)
    finally:
        log.removeHandler(handler)
    assert stream.getvalue().strip() == "Voice pipeline ready: threshold=0.50"


def test_object_args_are_redacted_only_when_they_hold_a_secret():
    settings = {"api_key": "sk-live-42", "gain": 4.0}
    err = ValueError("plain failure")
    rec = _record("settings %s, error %r", (settings, err))
    RedactFilter().filter(rec)
    msg = rec.getMessage()
    assert "sk-live-42" not in msg
    assert "ValueError('plain failure')" in msg
