from __future__ import annotations
import logging
from typing import Iterable, List, Sequence

logger = logging.getLogger(__name__)


def amplify(samples: Iterable[float], gain: float) -> List[float]:
    """Apply ``gain`` to every sample and rescale so the peak never leaves [-1, 1].

    A non-positive gain is replaced with 1.0. If the amplified peak exceeds
    1.0 the whole buffer is multiplied by ``1 / peak``, which keeps the
    ratios between samples intact.
    """
    if gain is None or gain <= 0:
        logger.warning("amplify: invalid gain %r, using 1.0", gain)
        gain = 1.0

    out: List[float] = []
    peak = 0.0
    for s in samples:
        v = float(s) * gain
        out.append(v)
        a = abs(v)
        if a > peak:
            peak = a

    if peak > 1.0:
        factor = 1.0 / peak
        out = [v * factor for v in out]
    return out


def average_volume(samples: Sequence[float]) -> float:
    if not samples:
        return 0.0
    return sum(abs(s) for s in samples) / len(samples)
