from lecture_copilot.core.retry import RetryPolicy


def test_attempts_are_bounded_with_growing_backoff():
    slept = []
    policy = RetryPolicy(max_attempts=3, attempt_timeout_sec=5, backoff_sec=1, sleep=slept.append)

    attempts = list(policy.attempts())

    assert [a.number for a in attempts] == [1, 2, 3]
    assert [a.is_last for a in attempts] == [False, False, True]
    assert all(a.timeout_sec == 5 for a in attempts)
    assert slept == [1, 2]


def test_total_budget_shrinks_and_stops_attempts():
    now = [0.0]
    policy = RetryPolicy(
        max_attempts=5,
        attempt_timeout_sec=60,
        total_timeout_sec=10,
        clock=lambda: now[0],
        sleep=lambda _s: None,
    )

    timeouts = []
    for attempt in policy.attempts():
        timeouts.append(attempt.timeout_sec)
        now[0] += 6

    assert timeouts == [10, 4]


def test_at_least_one_attempt():
    assert len(list(RetryPolicy(max_attempts=0).attempts())) == 1


def test_stopping_early_skips_remaining_sleeps():
    slept = []
    policy = RetryPolicy(max_attempts=3, backoff_sec=1, sleep=slept.append)

    for attempt in policy.attempts():
        break

    assert slept == []
