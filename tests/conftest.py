"""
Shared pytest configuration.

Puts the repository root on sys.path so the flat modules import without an
install, and provides the reference profile plus a scripted random source.
"""
import os
import sys

import pytest

_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)


class ScriptedRandom:
    """Stand-in for random.Random: randint() returns queued values in order.

    A queued value of None falls through to the lower bound of the request.
    Every call is recorded in ``calls``.
    """

    def __init__(self, *values):
        self._values = list(values)
        self.calls = []

    def randint(self, a, b):
        self.calls.append((a, b))
        value = self._values.pop(0) if self._values else None
        return a if value is None else value


@pytest.fixture
def reference_profile():
    return {"p50": 25, "p75": 50, "p90": 75, "p95": 100, "p99": 200, "max": 3000}


@pytest.fixture
def scripted():
    return ScriptedRandom
