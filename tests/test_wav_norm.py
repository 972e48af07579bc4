import math
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from core.wav_norm import amplify, average_volume


def _sine(n=200, amp=0.3):
    return [amp * math.sin(2 * math.pi * 7 * t / n) for t in range(n)]


def test_unit_gain_is_identity_for_in_range_audio():
    samples = _sine(amp=1.0) + [0.0, -1.0, 1.0]
    assert amplify(samples, 1.0) == samples


def test_gain_without_overflow_is_plain_multiplication():
    assert amplify([0.1, -0.2, 0.05], 2.0) == pytest.approx([0.2, -0.4, 0.1])


def test_overflow_rescales_peak_to_one_and_keeps_ratios():
    samples = [0.1, -0.5, 0.25, 0.0]
    out = amplify(samples, 4.0)

    assert max(abs(v) for v in out) == pytest.approx(1.0)
    assert out == pytest.approx([0.2, -1.0, 0.5, 0.0])
    pre = [s * 4.0 for s in samples]
    assert out[0] / out[2] == pytest.approx(pre[0] / pre[2])
    assert out[1] / out[0] == pytest.approx(pre[1] / pre[0])


def test_loud_sine_never_leaves_unit_range():
    out = amplify(_sine(amp=0.9), 10.0)
    assert all(-1.0 <= v <= 1.0 for v in out)
    assert max(abs(v) for v in out) == pytest.approx(1.0)


@pytest.mark.parametrize("gain", [0.0, -3.0])
def test_non_positive_gain_falls_back_to_unity(gain, caplog):
    samples = [0.1, -0.3]
    with caplog.at_level("WARNING"):
        assert amplify(samples, gain) == samples
    assert "invalid gain" in caplog.text


def test_empty_buffer():
    assert amplify([], 4.0) == []
    assert average_volume([]) == 0.0


def test_average_volume_is_mean_absolute_amplitude():
    assert average_volume([0.5, -0.5, 0.0, 1.0]) == pytest.approx(0.5)
