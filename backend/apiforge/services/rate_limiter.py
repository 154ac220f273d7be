"""
apiforge — Fixed-Window Rate Limiter
=====================================

What:  Per-key request counter that caps traffic at `max` requests per window.
How:   One RateLimitRecord per key in a dict guarded by a threading.Lock.
       This map is the only shared mutable state in the request path.
Who:   The "rate_limit" pipeline stage (built by `stage()`); the lifespan
       sweeper task; admin/tests via `status()` and `reset()`.

Algorithm: Fixed Window
    On each check(key):
    1. No record, or now > window_reset_time → new record
       (count=0, window_reset_time = now + window_ms)
    2. count += 1
    3. count > max → denied, retry_after_ms = window_reset_time - now
       otherwise    → allowed, remaining = max - count

    Bursts of up to 2 × max around a window boundary are possible. That is
    the accepted cost of the fixed window; a sliding log would need the
    timestamps of every request per key.

Memory:
    Expired records are dropped by sweep_expired(), called every
    `sweep_every` checks and by a background task (see main.lifespan).

Keys:
    user:<subject> when the context already carries an authenticated
    identity, otherwise ip:<client address>. Generated chains run
    rate_limit before auth, so their quota is always per IP; only chains
    that put auth first get per-user budgets. The subject of a token that
    has not been through auth yet is never used as a key, since a client
    could mint a fresh subject per request to reset its budget.

Scope:
    Process-local. N workers or instances enforce N independent budgets.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from apiforge.exceptions import RateLimitExceededError
from apiforge.pipeline.context import AuthIdentity, RequestContext
from apiforge.pipeline.outcome import Continue, ShortCircuit, Stage, StageOutcome

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitRecord:
    key: str
    count: int
    window_reset_time: float  # epoch milliseconds


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch milliseconds
    retry_after_ms: int = 0

    def headers(self) -> Dict[str, str]:
        reset = datetime.fromtimestamp(self.reset_at / 1000, tz=timezone.utc)
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": reset.isoformat().replace("+00:00", "Z"),
        }


class RateLimiter:
    """
    Args:
        max_requests:  Default quota per window
        window_ms:     Default window length in milliseconds
        sweep_every:   Run sweep_expired() after this many checks
        clock:         Returns "now" in epoch milliseconds (tests inject one)
    """

    message = "Too many requests, please try again later."

    def __init__(
        self,
        max_requests: int = 100,
        window_ms: int = 15 * 60 * 1000,
        sweep_every: int = 1000,
        clock: Callable[[], float] = _now_ms,
    ):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.sweep_every = sweep_every
        self._clock = clock
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()
        self._checks = 0

    @staticmethod
    def key_for(identity: Optional[AuthIdentity], client_ip: str) -> str:
        if identity is not None and identity.subject_id:
            return f"user:{identity.subject_id}"
        return f"ip:{client_ip}"

    def check(
        self,
        key: str,
        max_requests: Optional[int] = None,
        window_ms: Optional[int] = None,
    ) -> RateLimitDecision:
        limit = max_requests or self.max_requests
        window = window_ms or self.window_ms

        with self._lock:
            now = self._clock()
            record = self._records.get(key)
            if record is None or now > record.window_reset_time:
                record = RateLimitRecord(key=key, count=0, window_reset_time=now + window)
                self._records[key] = record
            record.count += 1
            count, reset_at = record.count, record.window_reset_time

            self._checks += 1
            sweep_due = self._checks % self.sweep_every == 0

        if sweep_due:
            self.sweep_expired()

        if count > limit:
            retry_after = max(0, math.ceil(reset_at - now))
            logger.warning("Rate limit exceeded for %s: %d requests (limit %d)", key, count, limit)
            return RateLimitDecision(False, limit, 0, reset_at, retry_after)
        return RateLimitDecision(True, limit, limit - count, reset_at)

    def sweep_expired(self) -> int:
        """Drop every record whose window has ended. Returns how many."""
        with self._lock:
            now = self._clock()
            expired = [k for k, r in self._records.items() if now > r.window_reset_time]
            for key in expired:
                del self._records[key]
        if expired:
            logger.debug("Swept %d expired rate-limit records", len(expired))
        return len(expired)

    def reset(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def status(self, key: str) -> Optional[RateLimitRecord]:
        """Snapshot of the record for `key` (None when absent or expired)."""
        with self._lock:
            record = self._records.get(key)
            if record is None or self._clock() > record.window_reset_time:
                return None
            return replace(record)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ── Pipeline stage ────────────────────────────────────────────────────

    def stage(self, max_requests: Optional[int] = None, window_ms: Optional[int] = None) -> Stage:
        """
        Build the "rate_limit" stage.

        Quota headers are attached to the context either way so they reach
        the client on 2xx and 429 responses alike.
        """

        async def run(ctx: RequestContext) -> StageOutcome:
            decision = self.check(self.key_for(ctx.identity, ctx.client_ip), max_requests, window_ms)
            ctx = ctx.with_headers(decision.headers())
            if decision.allowed:
                return Continue(ctx)
            return ShortCircuit(ctx, RateLimitExceededError(decision.retry_after_ms, message=self.message))

        return Stage(
            name="rate_limit",
            run=run,
            options={"max": max_requests or self.max_requests, "window_ms": window_ms or self.window_ms},
        )
