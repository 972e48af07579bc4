"""
Metrics for the voice-command pipeline: utterance outcomes, backend errors,
match phases and backend latency.
"""
import logging
from collections import defaultdict
from typing import Dict, Any

logger = logging.getLogger(__name__)

# Simple in-memory counters (can be extended to Prometheus later)
_counters: Dict[str, int] = defaultdict(int)
_histograms: Dict[str, list] = defaultdict(list)


def _make_key(label_values: dict) -> str:
    return "_".join(f"{k}_{v}" for k, v in sorted(label_values.items()))


class MetricCounter:
    def __init__(self, name: str, description: str, label_names: list):
        self.name = name
        self.description = description
        self.label_names = label_names or []

    def labels(self, **kwargs):
        """Return a labeled counter instance"""
        # Missing values default to "unknown"
        label_values = {
            key: kwargs.get(key, "unknown")
            for key in self.label_names
        }
        for key, value in kwargs.items():
            if key not in label_values:
                label_values[key] = value
        return LabeledCounter(self.name, label_values)


class LabeledCounter:
    def __init__(self, name: str, label_values: dict):
        self.name = name
        self.label_values = label_values

    @property
    def key(self) -> str:
        suffix = _make_key(self.label_values)
        return f"{self.name}_{suffix}" if suffix else self.name

    def inc(self, value: int = 1):
        """Increment the counter"""
        _counters[self.key] += value
        logger.debug(f"Counter {self.key} incremented by {value}, total: {_counters[self.key]}")

    def value(self) -> int:
        return _counters.get(self.key, 0)


class Histogram:
    def __init__(self, name: str, description: str, label_names: list, buckets: list):
        self.name = name
        self.description = description
        self.label_names = label_names or []
        self.buckets = buckets

    def labels(self, **kwargs):
        """Return a labeled histogram instance"""
        label_values = {
            key: kwargs.get(key, "unknown")
            for key in self.label_names
        }
        return LabeledHistogram(self.name, label_values)


class LabeledHistogram:
    def __init__(self, name: str, label_values: dict):
        self.name = name
        self.label_values = label_values

    def observe(self, value: float):
        """Observe a value"""
        key = f"{self.name}_{_make_key(self.label_values)}"
        _histograms[key].append(value)
        logger.debug(f"Histogram {key} observed value: {value}")


UTTERANCE_OUTCOMES = MetricCounter(
    "voice_utterance_outcomes_total",
    "Utterances by final outcome",
    ["status"]
)

BACKEND_ERRORS = MetricCounter(
    "voice_backend_errors_total",
    "Transcription backend failures",
    ["provider", "kind"]
)

MATCH_PHASE = MetricCounter(
    "voice_match_phase_total",
    "Which matching phase produced the command",
    ["phase"]
)

BACKEND_LATENCY = Histogram(
    "voice_backend_latency_seconds",
    "Time spent waiting on the transcription backend",
    ["provider"],
    buckets=[.25, .5, 1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
)


def get_metrics_summary() -> Dict[str, Any]:
    """Get a summary of all metrics"""
    return {
        "counters": dict(_counters),
        "histograms": {k: {"count": len(v), "sum": sum(v), "avg": sum(v)/len(v) if v else 0} for k, v in _histograms.items()}
    }


def reset_metrics() -> None:
    _counters.clear()
    _histograms.clear()
