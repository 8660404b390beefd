from .logs import humanize_milliseconds, ratelimited_log, setup_logs

__all__ = ["humanize_milliseconds", "ratelimited_log", "setup_logs"]
