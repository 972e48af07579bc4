from __future__ import annotations
import json
import logging
import re
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from core.types import MatchResult

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5
MIN_TOKEN_LEN = 2

# Order matters: the first variant found as a substring wins.
DEFAULT_VOCABULARY: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("sword", ("sword", "sord", "sort", "swort", "sworn", "so what", "swarp")),
    ("axe", ("axe", "ax", "acts", "ask", "ex")),
    ("spear", ("spear", "speer", "sphere", "spere", "pier", "peer")),
    ("mace", ("mace", "maze", "mais", "maize", "miss")),
    ("hand", ("hand", "hands", "fang", "hang", "and", "end")),
)

_split_re = re.compile(r"[\s,.!?]+")


class CommandVocabulary:
    """Ordered, read-only mapping of command name -> misheard-speech variants."""

    def __init__(self, entries: Iterable[Tuple[str, Sequence[str]]]) -> None:
        table: Dict[str, Tuple[str, ...]] = {}
        for name, variants in entries:
            key = str(name).strip().lower()
            if not key:
                raise ValueError("command name must be non-empty")
            if key in table:
                raise ValueError(f"duplicate command {key!r}")
            cleaned = tuple(v.strip().lower() for v in variants if v and v.strip())
            if not cleaned:
                raise ValueError(f"command {key!r} has no variants")
            table[key] = cleaned
        if not table:
            raise ValueError("vocabulary is empty")
        self._table = table

    @classmethod
    def default(cls) -> "CommandVocabulary":
        return cls(DEFAULT_VOCABULARY)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Sequence[str]]) -> "CommandVocabulary":
        return cls(mapping.items())

    @classmethod
    def from_json_file(cls, path: str) -> "CommandVocabulary":
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: vocabulary must be a JSON object")
        return cls.from_mapping(data)

    @property
    def commands(self) -> List[str]:
        return list(self._table)

    def variants(self, command: str) -> Tuple[str, ...]:
        return self._table[command]

    def items(self) -> Iterator[Tuple[str, Tuple[str, ...]]]:
        return iter(self._table.items())

    def __contains__(self, command: object) -> bool:
        return command in self._table

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"CommandVocabulary({self.commands!r})"


def levenshtein(a: str, b: str) -> int:
    """Classic DP edit distance, unit cost for insert/delete/substitute."""
    m, n = len(a), len(b)
    d = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m + 1):
        d[i][0] = i
    for j in range(n + 1):
        d[0][j] = j
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            d[i][j] = min(d[i - 1][j] + 1, d[i][j - 1] + 1, d[i - 1][j - 1] + cost)
    return d[m][n]


def similarity(a: str, b: str) -> float:
    """``1 - levenshtein / max_len`` in [0, 1]; 0.0 when either side is empty."""
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


def tokenize(text: str) -> List[str]:
    return [t for t in _split_re.split(text) if len(t) >= MIN_TOKEN_LEN]


def exact_match(normalized: str, vocabulary: CommandVocabulary) -> Optional[MatchResult]:
    for command, variants in vocabulary.items():
        for variant in variants:
            if variant in normalized:
                return MatchResult(command=command, similarity=1.0, phase="exact", variant=variant)
    return None


def best_fuzzy(normalized: str, vocabulary: CommandVocabulary) -> Optional[MatchResult]:
    """Best (token, variant) pair over the whole scan, or None without tokens.

    Ties keep the first pair seen.
    """
    best: Optional[MatchResult] = None
    best_score = 0.0
    for token in tokenize(normalized):
        for command, variants in vocabulary.items():
            for variant in variants:
                score = similarity(token, variant)
                if score > best_score:
                    best_score = score
                    best = MatchResult(command=command, similarity=score, phase="fuzzy",
                                       token=token, variant=variant)
    return best


def match(text: Optional[str], vocabulary: CommandVocabulary,
          threshold: float = DEFAULT_THRESHOLD) -> Optional[MatchResult]:
    normalized = (text or "").lower().strip()
    if not normalized:
        return None

    hit = exact_match(normalized, vocabulary)
    if hit is not None:
        return hit

    best = best_fuzzy(normalized, vocabulary)
    if best is not None and best.similarity >= threshold:
        return best
    return None


class CommandMatcher:
    def __init__(self, vocabulary: Optional[CommandVocabulary] = None,
                 threshold: float = DEFAULT_THRESHOLD) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.vocabulary = vocabulary or CommandVocabulary.default()
        self.threshold = threshold

    def match(self, text: Optional[str]) -> Optional[MatchResult]:
        result = match(text, self.vocabulary, self.threshold)
        if result is not None:
            logger.debug("Matched %r -> %s (%s, %.3f, variant=%r)",
                         text, result.command, result.phase, result.similarity, result.variant)
        return result

    def best_candidate(self, text: Optional[str]) -> Optional[MatchResult]:
        """Best fuzzy pair regardless of threshold, for diagnostics."""
        return best_fuzzy((text or "").lower().strip(), self.vocabulary)
