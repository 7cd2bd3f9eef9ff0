from types import SimpleNamespace

import pytest

from timeavg.clock import Clock


@pytest.fixture
def model():
    """A bare model that only carries a clock and the current value of its operand."""
    return SimpleNamespace(clock=Clock(), value=0.0)
