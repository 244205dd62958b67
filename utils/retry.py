"""
Bounded retry policy for backend calls.

Usage:
    from gateway import is_transient
    from utils.retry import RetryPolicy

    policy = RetryPolicy(attempts=2, delay=1.0, retry_if=is_transient)
    session = policy.call(auth.sign_in_with_password, email, password)
"""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Call an operation up to `attempts` times.

    The delay between attempts starts at `delay` seconds and is multiplied by
    `backoff` after each failure (backoff=1.0 keeps it fixed). An error for
    which `retry_if` returns False is raised at once; after the last attempt
    the last error is raised unchanged.
    """

    def __init__(self, attempts: int = 2, delay: float = 1.0, backoff: float = 1.0,
                 retry_if: Callable = None, sleep: Callable = time.sleep):
        if attempts < 1:
            raise ValueError('attempts must be at least 1')
        self.attempts = attempts
        self.delay = delay
        self.backoff = backoff
        self.retry_if = retry_if
        self.sleep = sleep

    def call(self, fn: Callable, *args, **kwargs):
        delay = self.delay
        for attempt in range(1, self.attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if attempt == self.attempts:
                    raise
                if self.retry_if is not None and not self.retry_if(e):
                    raise
                name = getattr(fn, '__name__', repr(fn))
                logger.warning(
                    f'{name} failed (attempt {attempt}/{self.attempts}): {e}; '
                    f'retrying in {delay:.1f}s'
                )
                self.sleep(delay)
                delay *= self.backoff

    def __repr__(self):
        return f'RetryPolicy(attempts={self.attempts}, delay={self.delay}, backoff={self.backoff})'
