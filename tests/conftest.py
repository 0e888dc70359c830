"""Shared candle builders for the test suite."""

import math
from datetime import datetime, timedelta

import pytest

from engine.models import Candle

START = datetime(2024, 1, 1)


def build_candles(closes, start=START, step=timedelta(hours=1), spread=0.5, volumes=None):
    """Candles whose open is the previous close and whose range pads the body by `spread`."""
    candles = []
    previous = closes[0]
    for i, close in enumerate(closes):
        open_ = previous
        candles.append(Candle(
            time=start + i * step,
            open=float(open_),
            high=float(max(open_, close) + spread),
            low=float(min(open_, close) - spread),
            close=float(close),
            volume=float(volumes[i]) if volumes is not None else 1000.0,
        ))
        previous = close
    return candles


def wave_closes(count=240, base=100.0, amplitude=10.0, period=60, drift=0.02):
    """Sine wave with a slight upward drift; produces regular MA crossovers."""
    return [
        base + amplitude * math.sin(2 * math.pi * i / period) + drift * i
        for i in range(count)
    ]


@pytest.fixture
def make_candles():
    return build_candles


@pytest.fixture
def wave_candles():
    return build_candles(wave_closes())
