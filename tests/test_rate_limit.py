import unittest

from jacketfit.rate_limit import FixedWindowRateLimiter, MemoryStore


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindowRateLimiter(unittest.TestCase):
    def test_allows_up_to_limit_then_rejects(self):
        clock = FakeClock(1000.0)
        limiter = FixedWindowRateLimiter(2, 60, clock=clock)

        first = limiter.hit("1.2.3.4")
        second = limiter.hit("1.2.3.4")
        third = limiter.hit("1.2.3.4")

        self.assertTrue(first.allowed)
        self.assertEqual(first.remaining, 1)
        self.assertTrue(second.allowed)
        self.assertFalse(third.allowed)
        self.assertEqual(third.remaining, 0)
        self.assertEqual(third.retry_after, 20)

    def test_keys_are_independent(self):
        limiter = FixedWindowRateLimiter(1, 60, clock=FakeClock(0.0))
        self.assertTrue(limiter.hit("a").allowed)
        self.assertTrue(limiter.hit("b").allowed)
        self.assertFalse(limiter.hit("a").allowed)

    def test_new_window_resets_count(self):
        clock = FakeClock(10.0)
        limiter = FixedWindowRateLimiter(1, 60, clock=clock)
        self.assertTrue(limiter.hit("a").allowed)
        self.assertFalse(limiter.hit("a").allowed)

        clock.now = 61.0
        self.assertTrue(limiter.hit("a").allowed)

    def test_rejects_invalid_config(self):
        with self.assertRaises(ValueError):
            FixedWindowRateLimiter(0, 60)


class TestMemoryStore(unittest.TestCase):
    def test_expired_counters_are_dropped(self):
        clock = FakeClock(0.0)
        store = MemoryStore(clock=clock)
        self.assertEqual(store.incr("k", 10), 1)
        self.assertEqual(store.incr("k", 10), 2)

        clock.now = 11.0
        self.assertEqual(store.incr("k", 10), 1)
