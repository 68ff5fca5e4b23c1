"""
Batch Reveal Assignment Engine

Assigns every item of a collection a metadata index, one fixed-size batch at a time,
without ever storing a permutation. Each revealed batch contributes a single seed; the
metadata index of any item is recomputed on demand by replaying the seeds of the batches
before it through an IntervalSet.

How a query resolves:
1. ``batch = item // batch_size``
2. Replay batches ``0 .. batch - 1``: each one claims ``batch_size`` free positions
   starting at the ``seed``-th free position of the set built so far.
3. The item lands on free position ``(item % batch_size) + seed[batch]``.

Because a batch's span is reserved before any later batch searches for free positions,
no two revealed items can resolve to the same index: once every batch is revealed the
mapping is a bijection of ``[0, collection_size)``. A query costs one range insertion
per earlier batch, so the total work of a full reveal grows quadratically with the
number of batches.

Seeds are reduced modulo the number of still-free positions. That reduction is not
perfectly uniform (the modulus shrinks batch after batch) and the on-call entropy is
predictable to a privileged caller; the oracle path in LaunchController is the sound
alternative.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Union

from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad.config import MAX_REVEAL_INTERVAL, MAX_REVEAL_START_DELAY
from mcp_nft_launchpad.errors import ConfigurationError, RandomnessError, RevealNotReadyError
from mcp_nft_launchpad.intervals import IntervalSet

logger = get_logger(__name__)


@dataclass(frozen=True)
class Unrevealed:
    batch: int


@dataclass(frozen=True)
class Revealed:
    batch: int
    seed: int


BatchState = Union[Unrevealed, Revealed]


def validate_batch_size(collection_size: int, batch_size: int) -> None:
    if batch_size <= 0 or batch_size > collection_size or collection_size % batch_size != 0:
        raise ConfigurationError(
            f"Reveal batch size {batch_size} must be positive and evenly divide the collection size {collection_size}"
        )


def validate_reveal_dates(start_time: int, interval: int, now: int) -> None:
    if start_time > now + MAX_REVEAL_START_DELAY:
        raise ConfigurationError(f"Reveal start time {start_time} is too far in the future")
    if interval > MAX_REVEAL_INTERVAL:
        raise ConfigurationError(f"Reveal interval {interval} exceeds the maximum of {MAX_REVEAL_INTERVAL}s")


class RevealLedger:
    """Seeds and progress of the batch reveal for one collection."""

    def __init__(self, collection_size: int, batch_size: int, start_time: int = 0, interval: int = 0):
        validate_batch_size(collection_size, batch_size)
        self.collection_size = collection_size
        self.batch_size = batch_size
        self.start_time = start_time
        self.interval = interval
        self.last_revealed = 0
        self._seeds: Dict[int, int] = {}

    @property
    def batch_count(self) -> int:
        return self.collection_size // self.batch_size

    @property
    def next_batch(self) -> int:
        return self.last_revealed // self.batch_size

    @property
    def started(self) -> bool:
        return self.last_revealed > 0

    @property
    def complete(self) -> bool:
        return self.last_revealed >= self.collection_size

    def state(self, batch: int) -> BatchState:
        if batch in self._seeds:
            return Revealed(batch, self._seeds[batch])
        return Unrevealed(batch)

    def is_revealed(self, item_id: int) -> bool:
        return item_id < self.last_revealed

    # --- Configuration (only before the first reveal) ---

    def _ensure_not_started(self) -> None:
        if self.started:
            raise ConfigurationError("Batch reveal has already started")

    def set_batch_size(self, batch_size: int) -> None:
        self._ensure_not_started()
        validate_batch_size(self.collection_size, batch_size)
        self.batch_size = batch_size

    def set_start_time(self, start_time: int, now: int) -> None:
        self._ensure_not_started()
        validate_reveal_dates(start_time, self.interval, now)
        self.start_time = start_time

    def set_interval(self, interval: int, now: int) -> None:
        self._ensure_not_started()
        validate_reveal_dates(self.start_time, interval, now)
        self.interval = interval

    # --- Reveal progression ---

    def has_next(self, total_minted: int, now: int) -> bool:
        """True when enough items are minted and the next batch's reveal time has come."""
        if self.complete:
            return False
        if total_minted < self.last_revealed + self.batch_size:
            return False
        return now >= self.start_time + self.next_batch * self.interval

    def set_seed(self, batch: int, randomness: int) -> int:
        """
        Fixes the seed of ``batch``. A batch moves from Unrevealed to Revealed exactly once;
        the stored value is ``randomness`` reduced modulo the positions still free.
        """
        if isinstance(self.state(batch), Revealed):
            raise RandomnessError(f"Batch {batch} is already revealed")
        if not 0 <= batch < self.batch_count:
            raise RandomnessError(f"Batch {batch} is outside the collection")
        # Not perfectly uniform since the modulus rarely divides the randomness range; the bias is small.
        seed = randomness % (self.collection_size - batch * self.batch_size)
        self._seeds[batch] = seed
        return seed

    def advance(self, randomness: int) -> int:
        """Reveals the next batch with ``randomness`` and returns its seed."""
        if self.complete:
            raise RevealNotReadyError("Every batch has already been revealed")
        batch = self.next_batch
        seed = self.set_seed(batch, randomness)
        self.last_revealed += self.batch_size
        logger.info(f"Revealed batch {batch} with seed {seed} ({self.last_revealed}/{self.collection_size} items)")
        return seed

    def reveal_next(self, total_minted: int, now: int, randomness: int) -> int:
        if not self.has_next(total_minted, now):
            raise RevealNotReadyError(
                f"Batch {self.next_batch} cannot be revealed yet "
                f"(minted={total_minted}, revealed={self.last_revealed}, now={now})"
            )
        return self.advance(randomness)

    # --- Resolution ---

    def _claimed_ranges(self, batch: int) -> IntervalSet:
        ranges = IntervalSet(self.collection_size)
        for earlier in range(batch):
            start = ranges.locate_free(self._seeds[earlier])
            ranges.insert_merge(start, start + self.batch_size)
        return ranges

    def shuffled_index(self, item_id: int) -> int:
        if not 0 <= item_id < self.collection_size:
            raise ValueError(f"Item {item_id} is outside the collection")
        batch = item_id // self.batch_size
        state = self.state(batch)
        if not isinstance(state, Revealed):
            raise RevealNotReadyError(f"Batch {batch} of item {item_id} is not revealed")
        ranges = self._claimed_ranges(batch)
        index = ranges.locate_free(item_id % self.batch_size + state.seed)
        logger.debug(f"Item {item_id} resolved to metadata index {index} through {len(ranges)} reserved range(s)")
        return index

    def resolve(self, item_id: int) -> Optional[int]:
        """Metadata index of ``item_id``, or None while its batch is unrevealed."""
        if not self.is_revealed(item_id):
            return None
        return self.shuffled_index(item_id)
