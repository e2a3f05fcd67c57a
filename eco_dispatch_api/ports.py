# eco_dispatch_api/ports.py
"""
Timeout-bounded calls into optional external collaborators (route store,
cache backend).

A port call never raises: errors and timeouts come back as a failed
PortResult carrying an UpstreamUnavailable, so callers can fall through to
the next tier with a plain `if result.ok`.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Optional

from eco_dispatch_api.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

# shared by every port; a hung backend call only pins one worker
_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix='port-call')


@dataclass(frozen=True)
class PortResult:
    ok: bool
    value: Any = None
    error: Optional[UpstreamUnavailable] = None

    @classmethod
    def success(cls, value):
        return cls(True, value)

    @classmethod
    def failure(cls, error):
        return cls(False, None, error)


def call_with_timeout(port, fn, *args, timeout=1.0):
    """Run fn(*args) bounded by `timeout` seconds and wrap the outcome."""
    future = _executor.submit(fn, *args)
    try:
        return PortResult.success(future.result(timeout=timeout))
    except FutureTimeout:
        future.cancel()
        error = UpstreamUnavailable(port, f"timed out after {timeout}s")
    except Exception as exc:  # any backend failure degrades to a miss
        error = UpstreamUnavailable(port, f"{type(exc).__name__}: {exc}")
    logger.warning("%s", error)
    return PortResult.failure(error)
