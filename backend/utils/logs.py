import logging
import warnings
from typing import Callable

from cachetools.func import ttl_cache

logger = logging.getLogger("friendgraph.logs")


def setup_logs():
    # logging.captureWarnings(True)
    warnings.simplefilter("default")
    logging.getLogger("friendgraph").setLevel(logging.DEBUG)
    logging.basicConfig()


def humanize_milliseconds(elapsed):
    """Write a millisecond amount in a human-readable way.
    >>> humanize_milliseconds(0)
    '0 ms.'
    >>> humanize_milliseconds(11)
    '11 ms.'
    >>> humanize_milliseconds(65*1000)
    '1\\'5"'
    >>> humanize_milliseconds(30*1000)
    '30"'
    >>> humanize_milliseconds(30*1000+10)
    '30.0"'
    """
    elapsed = int(elapsed)
    if elapsed <= 5000:  # up to 5" we show milliseconds
        return f"{elapsed:,} ms."
    elapsed /= 1000.0
    if elapsed >= 60:  # keep the minute
        minutes = int(elapsed / 60)
        seconds = int(elapsed - minutes * 60)
        return f"{minutes}'{seconds}\""
    if elapsed == int(elapsed):  # get rid of decimals
        return f'{int(elapsed)}"'
    return f'{elapsed:.1f}"'


loggers: dict[int, Callable] = {}


def ratelimited_log(delay_or_fn: int | Callable, msg=None):
    """Log a given message at most once every `delay` seconds"""
    if callable(delay_or_fn):
        logger_method = delay_or_fn
        delay = 60
    else:
        delay = delay_or_fn
        logger_method = None

    if delay not in loggers:

        @ttl_cache(ttl=delay)
        def call(logger_method, message):
            logger_method(message)

        loggers[delay] = call

    if logger_method is not None:
        return loggers[delay](logger_method, msg)
    return loggers[delay]


def before_sleep_log_concise(logger, log_level):
    """A tenacity before_sleep hook writing a single line per retry"""

    def log_it(retry_state):
        wait = retry_state.next_action.sleep if retry_state.next_action else None
        if wait is not None:  # wait is in seconds
            wait_str = humanize_milliseconds(wait * 1000)
        else:
            wait_str = "unknown time"
        fn_name = getattr(retry_state.fn, "__qualname__", "attempt")
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        if exception:
            msg = (
                f"Retrying {fn_name} (attempt {retry_state.attempt_number}) in"
                f" {wait_str} as it raised {type(exception).__name__}: {exception}"
            )
        else:
            msg = f"Retrying {fn_name} in {wait_str}"
        logger.log(log_level, msg)

    return log_it
