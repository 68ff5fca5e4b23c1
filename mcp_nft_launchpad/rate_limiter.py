"""
Per-Requester Rate Limiting

Limits how many state-changing requests one requester address may make per minute, so
that a single wallet cannot flood a launch with mint, pre-commit or reveal calls.

Rate Limiting Algorithm:
- Fixed 60-second window per requester, opened by its first request
- Counter resets once the window has expired
- Requests beyond RATE_LIMIT_PER_MINUTE inside the window are rejected

Storage:
- OrderedDict in least-recently-used order
- Expired entries are dropped once more than MAX_TRACKED_REQUESTERS are tracked

Usage:
- ``enforce_rate_limit(requester)`` raises RateLimitExceededError; the MCP tools call it
  before touching a launch
"""
import time
from typing import Tuple
from collections import OrderedDict

from mcp_nft_launchpad.config import RATE_LIMIT_PER_MINUTE
from mcp_nft_launchpad.errors import RateLimitExceededError
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60
MAX_TRACKED_REQUESTERS = 1000

# {requester: (count, first_request_timestamp_in_window)}
rate_limit_cache: OrderedDict[str, Tuple[int, int]] = OrderedDict()


def check_rate_limit(requester: str) -> bool:
    """
    Records a request from ``requester``.

    Returns:
        True if the request is allowed, False if the limit for the current window is reached.
    """
    now = int(time.time())
    limit = RATE_LIMIT_PER_MINUTE

    if len(rate_limit_cache) > MAX_TRACKED_REQUESTERS:
        cleanup_old_entries(now - WINDOW_SECONDS)

    if requester in rate_limit_cache:
        count, timestamp = rate_limit_cache[requester]
        if now - timestamp >= WINDOW_SECONDS:
            rate_limit_cache[requester] = (1, now)
            rate_limit_cache.move_to_end(requester)
            logger.debug(f"Rate limit window reset for requester: {requester}")
            return True
        if count >= limit:
            logger.warning(f"Rate limit exceeded for requester: {requester}. Count: {count}, Limit: {limit}")
            return False
        rate_limit_cache[requester] = (count + 1, timestamp)
        rate_limit_cache.move_to_end(requester)
        return True

    rate_limit_cache[requester] = (1, now)
    rate_limit_cache.move_to_end(requester)
    logger.debug(f"Rate limit initiated for requester: {requester}")
    return True


def enforce_rate_limit(requester: str) -> None:
    if not check_rate_limit(requester):
        raise RateLimitExceededError(f"Rate limit exceeded for {requester}; try again in a minute")


def cleanup_old_entries(cutoff_time: int):
    """Removes entries whose window opened before ``cutoff_time``."""
    expired = [requester for requester, (_, timestamp) in rate_limit_cache.items() if timestamp < cutoff_time]
    for requester in expired:
        del rate_limit_cache[requester]
    if expired:
        logger.debug(f"Cleaned up {len(expired)} old rate limit entries")
