"""
Reveal Randomness Sources

Two ways to obtain the randomness that seeds a reveal batch:

- On-call derivation: a SHA-256 digest of the caller, the request time, the reveal
  progress and the launch id. Cheap and synchronous, but anyone who controls those
  inputs can predict the result. Suitable for tests and low-value drops only.
- An oracle: the reveal call files a request and returns; the seed arrives later through
  a callback carrying one or more random words. QueuedRandomnessOracle is an in-process
  oracle whose requests are fulfilled explicitly (from a tool call or a test).
"""
import hashlib
import secrets
from typing import Callable, Dict, List, Optional, Protocol

from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad.errors import RandomnessError

logger = get_logger(__name__)

FulfillmentCallback = Callable[[int, List[int]], None]


def derive_randomness(caller: Pubkey, now: int, nonce: int, launch_id: str) -> int:
    """Pseudo-random 256-bit integer from request metadata. Predictable; not for high-value drops."""
    digest = hashlib.sha256()
    digest.update(bytes(caller))
    digest.update(now.to_bytes(8, "big", signed=False))
    digest.update(nonce.to_bytes(8, "big", signed=False))
    digest.update(launch_id.encode())
    return int.from_bytes(digest.digest(), "big")


class RandomnessOracle(Protocol):
    def request_random_words(self, callback: FulfillmentCallback, num_words: int = 1) -> int:
        """Files a request and returns its id; ``callback(request_id, words)`` runs on fulfilment."""
        ...


class QueuedRandomnessOracle:
    """Holds requests until ``fulfill`` is called for them."""

    def __init__(self):
        self._next_request_id = 1
        self._requests: Dict[int, tuple] = {}

    @property
    def pending_requests(self) -> List[int]:
        return sorted(self._requests)

    def request_random_words(self, callback: FulfillmentCallback, num_words: int = 1) -> int:
        if num_words <= 0:
            raise RandomnessError("At least one random word must be requested")
        request_id = self._next_request_id
        self._next_request_id += 1
        self._requests[request_id] = (callback, num_words)
        logger.info(f"Randomness request {request_id} filed for {num_words} word(s)")
        return request_id

    def fulfill(self, request_id: int, words: Optional[List[int]] = None) -> List[int]:
        """Delivers ``words`` (fresh random words when omitted) to the request's callback."""
        if request_id not in self._requests:
            raise RandomnessError(f"Unknown randomness request {request_id}")
        callback, num_words = self._requests.pop(request_id)
        if words is None:
            words = [secrets.randbits(256) for _ in range(num_words)]
        callback(request_id, words)
        return words
