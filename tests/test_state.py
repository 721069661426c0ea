from pulse.src.core.state import BotState, RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_second_call_within_cooldown_is_rejected() -> None:
    clock = FakeClock()
    limiter = RateLimiter(cooldown=60, clock=clock)

    assert limiter.try_acquire("U1")
    clock.now += 59.999
    assert not limiter.try_acquire("U1")


def test_calls_a_full_cooldown_apart_both_succeed() -> None:
    clock = FakeClock()
    limiter = RateLimiter(cooldown=60, clock=clock)

    assert limiter.try_acquire("U1")
    clock.now += 60
    assert limiter.try_acquire("U1")


def test_rejected_call_does_not_extend_the_cooldown() -> None:
    clock = FakeClock()
    limiter = RateLimiter(cooldown=60, clock=clock)

    limiter.try_acquire("U1")
    clock.now += 30
    limiter.try_acquire("U1")
    clock.now += 30

    assert limiter.try_acquire("U1")


def test_users_are_limited_independently() -> None:
    limiter = RateLimiter(cooldown=60, clock=FakeClock())

    assert limiter.try_acquire("U1")
    assert limiter.try_acquire("U2")
    assert len(limiter) == 2


def test_whitelisted_users_are_never_limited() -> None:
    limiter = RateLimiter(cooldown=60, whitelist={"UADMIN"}, clock=FakeClock())

    assert all(limiter.try_acquire("UADMIN") for _ in range(5))


def test_bot_state_starts_without_a_digest() -> None:
    state = BotState()

    assert state.cached_digest is None
    assert isinstance(state.rate_limiter, RateLimiter)
