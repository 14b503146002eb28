import asyncio
import logging
import math
import numbers
import random
import time
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ('max', 'p99', 'p95', 'p90', 'p75', 'p50')
MESSAGE = 'Simulated latency based on profile.'


class ProfileError(Exception):
    pass


class ProfileEmpty(ProfileError):
    def __init__(self):
        super().__init__('Latency profile not loaded or is empty. Check server logs.')


class ProfileIncomplete(ProfileError):
    def __init__(self, keys):
        self.keys = list(keys)
        super().__init__(
            'Latency profile is missing, or has invalid (non-numeric) values for keys: '
            f'{", ".join(self.keys)}'
        )


class ProfileUnordered(ProfileError):
    def __init__(self, values):
        self.values = dict(values)
        v = self.values
        super().__init__(
            'Latency profile values are not logically ordered '
            '(p50 <= p75 <= p90 <= p95 <= p99 <= max). '
            f'Current values: p50={v["p50"]}, p75={v["p75"]}, p90={v["p90"]}, '
            f'p95={v["p95"]}, p99={v["p99"]}, max={v["max"]}.'
        )


@dataclass(frozen=True)
class PercentileBand:
    lower_ms: int
    upper_ms: int
    label: str


@dataclass(frozen=True)
class SimulationResult:
    message: str
    random_draw_percentile: int
    target_latency_band_label: str
    calculated_latency_target_ms: int
    conceptual_latency_range_ms: str
    requested_sleep_ms: int
    actual_slept_ms: float

    def as_dict(self):
        return asdict(self)


def _is_numeric(value):
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _values(profile):
    return {k: int(profile[k]) for k in ('p50', 'p75', 'p90', 'p95', 'p99', 'max')}


def validate_profile(profile):
    """Raise a ProfileError unless the profile has six numeric, ordered entries."""
    if not profile:
        raise ProfileEmpty()
    bad = [k for k in REQUIRED_KEYS if not _is_numeric(profile.get(k))]
    if bad:
        raise ProfileIncomplete(bad)
    v = _values(profile)
    if not (v['p50'] <= v['p75'] <= v['p90'] <= v['p95'] <= v['p99'] <= v['max']):
        raise ProfileUnordered(v)


def _above(prev, nxt):
    # exclusive successor of prev, or prev itself when the band is a single point
    return prev + 1 if prev < nxt else prev


def select_band(profile, percentile):
    if not 1 <= percentile <= 100:
        raise ValueError(f'percentile must be in [1, 100], got {percentile}')
    v = _values(profile)
    if percentile == 100:
        return PercentileBand(_above(v['p99'], v['max']), v['max'], '>p99 to max')
    if percentile >= 96:
        return PercentileBand(_above(v['p95'], v['p99']), v['p99'], '>p95 to p99')
    if percentile >= 91:
        return PercentileBand(_above(v['p90'], v['p95']), v['p95'], '>p90 to p95')
    if percentile >= 76:
        return PercentileBand(_above(v['p75'], v['p90']), v['p90'], '>p75 to p90')
    if percentile >= 51:
        return PercentileBand(_above(v['p50'], v['p75']), v['p75'], '>p50 to p75')
    return PercentileBand(0, v['p50'], '<=p50')


def sample_delay(band, rng):
    """Pick a whole number of milliseconds inside ``band`` (inclusive).

    An inverted band cannot come out of a validated profile; if one shows up
    anyway the request is not failed, the upper bound is used and a warning
    is logged.
    """
    if band.lower_ms > band.upper_ms:
        logger.warning(
            f'lower bound ({band.lower_ms}) > upper bound ({band.upper_ms}) '
            f'for {band.label}, using upper bound ({band.upper_ms}ms)'
        )
        ms = band.upper_ms
    elif band.lower_ms == band.upper_ms:
        ms = band.lower_ms
    else:
        ms = rng.randint(band.lower_ms, band.upper_ms)
    return max(0, ms)


async def wait(ms):
    """Suspend the current task for ``ms`` milliseconds, return elapsed ms."""
    if ms <= 0:
        return 0
    t0 = time.perf_counter()
    await asyncio.sleep(ms / 1000.0)
    return round((time.perf_counter() - t0) * 1000.0, 2)


class LatencySimulator:
    """Blocks each caller for a delay drawn from a percentile latency profile.

    The profile is read-only and shared; every ``simulate()`` call is
    independent, so concurrent requests need no locking.

    Usage:
        sim = LatencySimulator(load_profile())
        result = await sim.simulate()
    """

    def __init__(self, profile, *, rng=None):
        self.profile = profile
        self._rng = rng if rng is not None else random.Random()

    async def simulate(self):
        validate_profile(self.profile)
        percentile = self._rng.randint(1, 100)
        band = select_band(self.profile, percentile)
        ms = sample_delay(band, self._rng)
        slept = await wait(ms)
        return SimulationResult(
            message=MESSAGE,
            random_draw_percentile=percentile,
            target_latency_band_label=band.label,
            calculated_latency_target_ms=ms,
            conceptual_latency_range_ms=f'{band.lower_ms}-{band.upper_ms}',
            requested_sleep_ms=ms,
            actual_slept_ms=slept,
        )
