"""
Backoff Policy: delay before the next attempt on the same model.

Only called between attempts, never before the first one. attempt_index
is the 1-based index of the attempt that just failed:

    exponential: min(max_delay, base * 2^(attempt_index - 1)) + jitter
    constant:    base + jitter

jitter is uniform in [0, jitter_ratio * base] so concurrent callers that
failed together do not retry in lockstep.
"""

import random
from typing import Callable

from reliability_layer.models.enums import BackoffKind
from reliability_layer.models.policy import BackoffPolicy


def compute_delay(
    policy: BackoffPolicy,
    attempt_index: int,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Seconds to wait after attempt `attempt_index` failed.

    Args:
        policy: Backoff curve
        attempt_index: 1-based index of the failed attempt
        rng: Source of uniform [0, 1) floats (injectable for tests)

    Raises:
        ValueError: attempt_index < 1
    """
    if attempt_index < 1:
        raise ValueError("attempt_index is 1-based")

    if policy.kind is BackoffKind.EXPONENTIAL:
        delay = min(policy.max_delay, policy.base * (2 ** (attempt_index - 1)))
    else:
        delay = policy.base

    jitter = rng() * policy.jitter_ratio * policy.base
    return delay + jitter
