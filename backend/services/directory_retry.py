import logging
from functools import partial

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_random
from tenacity.wait import wait_base

import settings
from utils import humanize_milliseconds
from utils.logs import before_sleep_log_concise, ratelimited_log

logger = logging.getLogger("friendgraph.directory.retry")


class DirectoryResponseError(Exception):
    """The directory answered with an unexpected status"""

    def __init__(self, response: httpx.Response, prefix=None):
        self.status_code = response.status_code
        self.headers = response.headers
        self.detail = f"{prefix}: {response.text}" if prefix else response.text
        super().__init__(f"{self.status_code} {self.detail}")


def exception_from_response(response: httpx.Response, prefix=None):
    return DirectoryResponseError(response, prefix)


def is_transient(exception: BaseException) -> bool:
    """Rate limits, server errors, expired tokens and network failures are
    worth a retry"""
    if isinstance(exception, DirectoryResponseError):
        return exception.status_code in (401, 429) or exception.status_code >= 500
    return isinstance(exception, httpx.TransportError)


class wait_retry_after_or_default(wait_base):
    def __init__(self, default_wait):
        self.default_wait = default_wait

    def __call__(self, retry_state):
        ex = retry_state.outcome.exception()
        if isinstance(ex, DirectoryResponseError):
            retry_after = ex.headers.get("Retry-After")
            if retry_after is not None:
                try:
                    wait_seconds = max(0, int(retry_after))
                    ratelimited_log(60 * 60)(
                        logger.warning, "Rate-limited by the user directory"
                    )
                    logger.debug(
                        f"Rate-limited, retry after {humanize_milliseconds(wait_seconds * 1000)}"
                    )
                    return 0 if settings.TESTING_MODE else wait_seconds
                except ValueError:
                    pass
        return self.default_wait(retry_state)


directory_retry = partial(
    retry,
    retry=retry_if_exception(is_transient),
    before_sleep=before_sleep_log_concise(logger, logging.DEBUG),
    wait=wait_retry_after_or_default(
        default_wait=wait_random(0, 0 if settings.TESTING_MODE else 0.5)
    ),
    stop=stop_after_attempt(3),
    reraise=True,
)
