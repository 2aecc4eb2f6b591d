"""Route test configuration: disable the rate limiter."""

from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting so repeated writes never hit 429."""
    with patch("core.ratelimit.limiter.enabled", False):
        yield
