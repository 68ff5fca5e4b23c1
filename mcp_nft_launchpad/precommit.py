"""
Pre-Commit Queue

Allowlisted buyers pay for items during the pre-commit phase without receiving them. Each
request is appended to a FIFO queue; once the allowlist phase opens, anyone may call
settlement to deliver queued items in order, as many as the settlement budget allows.

Invariants:
- the cursor only moves forward; entries before it are fully settled
- an entry's remaining quantity only decreases
- pending balances always equal the unsettled quantity of each requester's entries
- settling in several small calls ends in the same state as one large call
"""
from dataclasses import dataclass
from typing import List

from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad.errors import SupplyExhaustedError, ValidationError
from mcp_nft_launchpad.ledger import AllocationLedger

logger = get_logger(__name__)


@dataclass
class QueueEntry:
    requester: Pubkey
    remaining: int


@dataclass(frozen=True)
class Allocation:
    """Quantity delivered to one queue entry during a settlement."""
    requester: Pubkey
    quantity: int
    queue_index: int


class PreCommitQueue:
    def __init__(self, ledger: AllocationLedger, cap: int):
        self.ledger = ledger
        self.cap = cap
        self.entries: List[QueueEntry] = []
        self.cursor = 0

    def __len__(self) -> int:
        return len(self.entries) - self.cursor

    def check_enqueue(self, requester: Pubkey, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Pre-commit quantity must be a positive integer")
        self.ledger.check_allowance(requester, quantity)
        if self.ledger.pre_committed + quantity > self.cap:
            raise SupplyExhaustedError(
                f"Pre-commit of {quantity} exceeds the remaining allocation of {self.cap - self.ledger.pre_committed}"
            )

    def enqueue(self, requester: Pubkey, quantity: int) -> None:
        self.check_enqueue(requester, quantity)
        self.ledger.consume_allowance(requester, quantity)
        self.ledger.pending[requester] = self.ledger.pending_of(requester) + quantity
        self.ledger.pre_committed += quantity
        self.entries.append(QueueEntry(requester, quantity))
        logger.info(f"Queued pre-commit of {quantity} for {requester} at position {len(self.entries) - 1}")

    def settle(self, max_quantity: int) -> List[Allocation]:
        """
        Delivers up to ``max_quantity`` queued items in FIFO order and returns one
        Allocation per entry touched. Returns an empty list when nothing is pending.
        """
        if max_quantity <= 0:
            raise ValidationError("Settlement quantity must be a positive integer")

        allocations: List[Allocation] = []
        budget = max_quantity
        while budget > 0 and self.cursor < len(self.entries):
            entry = self.entries[self.cursor]
            quantity = min(entry.remaining, budget)
            entry.remaining -= quantity
            budget -= quantity
            self.ledger.pending[entry.requester] -= quantity
            self.ledger.settled += quantity
            allocations.append(Allocation(entry.requester, quantity, self.cursor))
            if entry.remaining == 0:
                self.cursor += 1

        if allocations:
            logger.info(f"Settled {max_quantity - budget} pre-committed item(s) across {len(allocations)} entr(ies)")
        else:
            logger.debug("Settlement requested with nothing pending")
        return allocations
