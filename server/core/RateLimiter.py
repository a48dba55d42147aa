import threading
import time

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from shared.helper.HelperConfig import HelperConfig


class Admission(BaseModel):
    allowed: bool
    retry_after: float | None = None
    reason: str | None = None


class RateLimiter:
    """Per-key admission control on moving windows.

    Two rules per key: at most max_requests admissions within the trailing
    window, and a flood guard rejecting a request when the average interval
    over the last flood_sample requests (including this one) is shorter
    than flood_min_interval. The flood guard is a second moving window of
    flood_sample - 1 hits spanning flood_sample - 1 intervals.

    Rejected requests are not recorded. When several keys gate one request,
    all of them are tested before any is hit.
    """

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        max_requests = int(helper_config.get_number_val("RATE_LIMIT_MAX_REQUESTS", default=60))
        window = int(helper_config.get_number_val("RATE_LIMIT_WINDOW", default=300))
        flood_sample = int(helper_config.get_number_val("RATE_LIMIT_FLOOD_SAMPLE", default=5))
        flood_min_interval = helper_config.get_number_val("RATE_LIMIT_FLOOD_MIN_INTERVAL", default=2)
        storage_uri = helper_config.get_string_val("RATE_LIMIT_STORAGE_URI", default="memory://")

        self._rules: list[tuple[str, RateLimitItem]] = [
            ("window", RateLimitItemPerSecond(max_requests, window, namespace="window")),
        ]
        previous = flood_sample - 1
        if flood_min_interval > 0 and previous > 0:
            span = max(1, round(flood_min_interval * previous))
            self._rules.append(("flood", RateLimitItemPerSecond(previous, span, namespace="flood")))

        self._limiter = MovingWindowRateLimiter(storage_from_string(storage_uri))
        # test-then-hit must not interleave across keys
        self._lock = threading.Lock()

    ##########################################
    ################ CHECKS ##################
    ##########################################

    def _find_rejection(self, key: str) -> Admission | None:
        for reason, item in self._rules:
            if self._limiter.test(item, key):
                continue
            stats = self._limiter.get_window_stats(item, key)
            retry_after = max(stats.reset_time - time.time(), 0.0)
            return Admission(allowed=False, retry_after=retry_after, reason=reason)
        return None

    def admit_all(self, keys: list[str]) -> tuple[str | None, Admission]:
        """Admit a request gated by several keys, recording it on every key only if all allow it.

        Returns:
            tuple[str | None, Admission]: (the rejecting key or None, the decision)
        """
        with self._lock:
            for key in keys:
                rejection = self._find_rejection(key)
                if rejection is not None:
                    self.logging.warning("Rate limit (%s) hit for %s.", rejection.reason, key)
                    return key, rejection
            for key in keys:
                for _, item in self._rules:
                    self._limiter.hit(item, key)
            return None, Admission(allowed=True)

    def admit(self, key: str) -> Admission:
        """Decide whether a request for key may proceed, and record it if so."""
        return self.admit_all([key])[1]
