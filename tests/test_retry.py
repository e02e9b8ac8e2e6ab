from voteledger.retry import RetryPolicy


def test_defaults():
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert list(policy.attempts()) == [1, 2, 3]
    assert [policy.backoff_for(a) for a in policy.attempts()] == [1.0, 2.0, 3.0]


def test_at_least_one_attempt():
    assert list(RetryPolicy(max_attempts=0).attempts()) == [1]


async def test_waits_go_through_injected_sleep(sleeper):
    policy = RetryPolicy(backoff=0.25, refresh_delay=0.1, sleep=sleeper)
    await policy.wait_refresh()
    await policy.wait_backoff(2)
    assert sleeper.delays == [0.1, 0.5]
