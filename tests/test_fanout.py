"""Tests for bounded fan-out."""

import asyncio

from contrib_tracker.fanout import bounded_fanout


class _Probe:
    def __init__(self):
        self.active = 0
        self.peak = 0

    async def work(self, n):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.001 * (n % 3))
        finally:
            self.active -= 1
        if n == 4:
            raise RuntimeError("boom")
        return n * 10


class TestBoundedFanout:
    def test_limit_and_error_isolation(self):
        probe = _Probe()
        results, errors = {}, {}

        asyncio.run(bounded_fanout(
            range(12), probe.work, limit=3,
            on_result=lambda item, r: results.__setitem__(item, r),
            on_error=lambda item, exc: errors.__setitem__(item, str(exc)),
        ))

        assert probe.peak <= 3
        assert errors == {4: "boom"}
        assert sorted(results) == [n for n in range(12) if n != 4]
        assert results[7] == 70

    def test_should_stop_prevents_new_launches(self):
        seen = []

        async def work(n):
            await asyncio.sleep(0)
            return n

        asyncio.run(bounded_fanout(
            range(100), work, limit=2,
            on_result=lambda item, r: seen.append(r),
            should_stop=lambda: len(seen) >= 5,
        ))
        # tasks already in flight still finish
        assert 5 <= len(seen) <= 6

    def test_empty_input(self):
        asyncio.run(bounded_fanout([], lambda n: None))
