"""Per-address allowances and per-phase mint counters of a launch."""
from dataclasses import dataclass, field
from typing import Dict

from solders.pubkey import Pubkey

from mcp_nft_launchpad.errors import AllowanceExceededError


@dataclass
class AllocationLedger:
    allowances: Dict[Pubkey, int] = field(default_factory=dict)
    pending: Dict[Pubkey, int] = field(default_factory=dict)
    minted_auction: int = 0
    pre_committed: int = 0
    settled: int = 0
    minted_allowlist: int = 0
    minted_public: int = 0
    minted_by_devs: int = 0
    proceeds: int = 0

    def allowance_of(self, address: Pubkey) -> int:
        return self.allowances.get(address, 0)

    def pending_of(self, address: Pubkey) -> int:
        return self.pending.get(address, 0)

    @property
    def outstanding(self) -> int:
        """Pre-committed quantity not settled yet."""
        return self.pre_committed - self.settled

    def check_allowance(self, address: Pubkey, quantity: int) -> None:
        remaining = self.allowance_of(address)
        if quantity > remaining:
            raise AllowanceExceededError(
                f"{address} requested {quantity} but has {remaining} allowlist slot(s) left"
            )

    def consume_allowance(self, address: Pubkey, quantity: int) -> None:
        self.check_allowance(address, quantity)
        self.allowances[address] = self.allowance_of(address) - quantity
