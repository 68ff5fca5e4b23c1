"""
Collectible Registry and Value Transfer Collaborators

The launch controller never owns items or funds itself. It mints through a
CollectibleRegistry and pays refunds through a ValueTransfer. Both are protocols; the
in-memory implementations below back the MCP server and the test-suite.

A registry mints sequential item ids and must either mint the whole quantity or nothing.
``snapshot``/``restore`` let the controller roll a call back when a later step (a refund)
fails, so that the whole call stays atomic.
"""
from typing import Dict, List, Protocol, Set

from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad.errors import RefundFailedError, ValidationError

logger = get_logger(__name__)


class CollectibleRegistry(Protocol):
    def mint(self, to: Pubkey, quantity: int) -> None: ...

    def total_minted(self) -> int: ...

    def owner_of(self, item_id: int) -> Pubkey: ...

    def balance_of(self, owner: Pubkey) -> int: ...

    def number_minted(self, owner: Pubkey) -> int: ...

    def snapshot(self) -> object: ...

    def restore(self, snapshot: object) -> None: ...


class ValueTransfer(Protocol):
    def send(self, to: Pubkey, amount: int) -> None:
        """Transfers ``amount`` to ``to``; raises when the transfer cannot be delivered."""
        ...


class InMemoryRegistry:
    def __init__(self, max_supply: int):
        self.max_supply = max_supply
        self._owners: List[Pubkey] = []
        self._minted: Dict[Pubkey, int] = {}

    def mint(self, to: Pubkey, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Mint quantity must be a positive integer")
        if len(self._owners) + quantity > self.max_supply:
            raise ValidationError(f"Minting {quantity} would exceed the registry supply of {self.max_supply}")
        first_id = len(self._owners)
        self._owners.extend([to] * quantity)
        self._minted[to] = self._minted.get(to, 0) + quantity
        logger.debug(f"Minted items {first_id}..{first_id + quantity - 1} to {to}")

    def total_minted(self) -> int:
        return len(self._owners)

    def owner_of(self, item_id: int) -> Pubkey:
        if not 0 <= item_id < len(self._owners):
            raise ValidationError(f"Item {item_id} does not exist")
        return self._owners[item_id]

    def balance_of(self, owner: Pubkey) -> int:
        return self._owners.count(owner)

    def number_minted(self, owner: Pubkey) -> int:
        return self._minted.get(owner, 0)

    def snapshot(self) -> object:
        return (list(self._owners), dict(self._minted))

    def restore(self, snapshot: object) -> None:
        owners, minted = snapshot
        self._owners = list(owners)
        self._minted = dict(minted)


class InMemoryTreasury:
    """Records refunds; recipients in ``rejecting`` make the transfer fail."""

    def __init__(self):
        self.sent: Dict[Pubkey, int] = {}
        self.rejecting: Set[Pubkey] = set()

    def send(self, to: Pubkey, amount: int) -> None:
        if to in self.rejecting:
            raise RefundFailedError(f"Recipient {to} rejected a transfer of {amount}")
        self.sent[to] = self.sent.get(to, 0) + amount
