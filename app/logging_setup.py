import json
import logging
import re
import sys
from typing import Optional

NOISY_LIBS = ("httpx", "httpcore", "hpack", "urllib3", "faster_whisper", "ctranslate2")


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "filename": record.filename,
            "lineno": record.lineno,
        }
        if hasattr(record, 'utterance_id'):
            log_record['utterance_id'] = record.utterance_id
        if record.exc_info:
            log_record['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(log_record)


class RedactFilter(logging.Filter):
    SENSITIVE_KEYS = ("authorization", "apikey", "api_key", "api-key", "x-api-key")
    # Match "Header: value" or "header=value"; "Bearer <token>" anywhere
    _pattern = re.compile("(" + "|".join(SENSITIVE_KEYS) + r")(['\"]?\s*[:=]\s*['\"]?)(?:Bearer\s+)?([^,;\s'\"]+)", re.IGNORECASE)
    _bearer = re.compile(r"(Bearer\s+)([A-Za-z0-9._\-]+)")

    def _redact(self, text: str) -> str:
        text = self._pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}***REDACTED***", text)
        return self._bearer.sub(lambda m: f"{m.group(1)}***REDACTED***", text)

    def _redact_arg(self, value):
        # numbers keep their type so %d / %.2f still format
        if isinstance(value, (int, float)):
            return value
        text = str(value)
        redacted = self._redact(text)
        if isinstance(value, str) or redacted != text:
            return redacted
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._redact(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_arg(v) for k, v in record.args.items()}
            else:
                record.args = tuple(self._redact_arg(a) for a in record.args)
        return True


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    root_logger = logging.getLogger()
    log_level = logging.DEBUG if debug else logging.INFO
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    redact = RedactFilter()
    if log_file:
        try:
            fh = logging.FileHandler(log_file, encoding='utf-8')
            fh.setLevel(log_level)
            fh.setFormatter(JsonFormatter())
            fh.addFilter(redact)
            root_logger.addHandler(fh)
        except OSError as e:
            print(f"Error setting up file logger: {e}", file=sys.stderr)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(log_level)
    ch.setFormatter(logging.Formatter('[%(levelname)-8s] %(name)s: %(message)s'))
    ch.addFilter(redact)
    root_logger.addHandler(ch)

    for lib in NOISY_LIBS:
        logging.getLogger(lib).setLevel(logging.WARNING)
    logging.info(f"Logging setup complete. Level: {logging.getLevelName(log_level)}")
    return root_logger
