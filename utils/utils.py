"""
utils/utils.py
--------------
Utility helpers.  Includes an aiohttp fetch with a per-request timeout and
exponential-backoff retries, used by the feed readers.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def fetch_with_retry(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    max_retries: int = 2,
    timeout: float = 8.0,
    backoff: float = 1.0,
    **kwargs: Any,
) -> Dict[str, Any]:
    """
    Perform one HTTP request, retrying transport errors and timeouts.

    Waits ``backoff * 2**attempt`` seconds between attempts (1s, 2s, 4s ...).
    Returns ``{"status": int, "text": str}``; the last error is re-raised
    once retries are exhausted.  Non-2xx responses are returned, not retried.
    """
    last_exc: Optional[BaseException] = None
    for attempt in range(max_retries + 1):
        try:
            async with session.request(
                method, url, timeout=aiohttp.ClientTimeout(total=timeout), **kwargs
            ) as resp:
                return {"status": resp.status, "text": await resp.text()}
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            last_exc = exc
            if attempt == max_retries:
                break
            wait = backoff * (2 ** attempt)
            logger.info("Retry %s/%s for %s after %.1fs: %s", attempt + 1, max_retries, url, wait, exc)
            await asyncio.sleep(wait)
    raise last_exc
