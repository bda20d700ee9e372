"""Clock tests."""

from datetime import datetime, timedelta, timezone

import pytest

from torneo.clock import ManualClock, SystemClock, require_aware
from torneo.utils.errors import InvalidArgumentError


class TestClocks:
    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is timezone.utc

    def test_manual_clock_moves_only_when_told(self):
        start = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        clock = ManualClock(start)

        assert clock.now() == start
        assert clock.advance(timedelta(minutes=11)) == start + timedelta(minutes=11)
        assert clock.now() == start + timedelta(minutes=11)

        clock.set(start)
        assert clock.now() == start


class TestRequireAware:
    def test_naive_rejected(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            require_aware(datetime(2026, 3, 1, 12, 0), "start_date")
        assert exc_info.value.details == {"field": "start_date"}

    def test_aware_and_unset_accepted(self):
        require_aware(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc), "start_date")
        require_aware(None, "start_date")
