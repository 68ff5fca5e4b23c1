"""
Pydantic Data Models and Validation Schemas

This module defines the configuration records and event records of the launchpad using
Pydantic. Configuration records are immutable once built; the launch controller replaces
them wholesale (via ``model_copy``) when a gated setter changes a boundary.

Key Components:
- Phase / SaleVariant Enums: sale phases and the two launch variants
- CollectionConfig: collection size, per-request/per-address limits and phase allocations
- SaleSchedule: the ordered phase boundaries
- PriceCurve / FlatPrices: Dutch auction decay parameters or fixed phase prices
- RevealConfig: batch reveal size, start time and interval
- LaunchConfigModel: a complete launch definition as stored in a JSON file
- Event models: records appended to a launch's event log on every state change

Field-level constraints (non-negative integers, basis points within 0-10000) are enforced
here. Cross-field invariants (allocations fitting the collection, strictly increasing
boundaries, a curve with at least four decay steps, a batch size dividing the collection)
are enforced where the records are put to use, and raise ConfigurationError.
"""
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from solders.pubkey import Pubkey


class Phase(str, Enum):
    not_started = "not_started"
    dutch_auction = "dutch_auction"
    pre_commit = "pre_commit"
    allowlist = "allowlist"
    public_sale = "public_sale"
    ended = "ended"

    @property
    def rank(self) -> int:
        return list(Phase).index(self)


class SaleVariant(str, Enum):
    dutch_auction = "dutch_auction"
    flat = "flat"


def parse_address(value: str) -> Pubkey:
    """Parse a base58 address, raising ValueError when it is malformed."""
    try:
        return Pubkey.from_string(value)
    except Exception as e:
        raise ValueError(f"Invalid address '{value}': {e}")


class CollectionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    symbol: str
    collection_size: int = Field(gt=0)
    max_per_request: int = Field(gt=0)
    max_per_address: int = Field(gt=0)
    amount_for_auction: int = Field(0, ge=0)
    amount_for_allowlist: int = Field(0, ge=0)
    amount_for_devs: int = Field(0, ge=0)


class SaleSchedule(BaseModel):
    """Phase boundaries as unix timestamps; zero means "not configured"."""
    model_config = ConfigDict(frozen=True)

    auction_start: int = Field(0, ge=0)
    pre_commit_start: int = Field(0, ge=0)
    allowlist_start: int = Field(0, ge=0)
    public_sale_start: int = Field(0, ge=0)
    public_sale_end: int = Field(0, ge=0)


class PriceCurve(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_price: int = Field(gt=0)
    end_price: int = Field(ge=0)
    drop_interval: int = Field(ge=0)
    allowlist_discount_bps: int = Field(0, ge=0, le=10_000)
    public_discount_bps: int = Field(0, ge=0, le=10_000)


class FlatPrices(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowlist_price: int = Field(ge=0)
    public_price: int = Field(ge=0)


class RevealConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_size: int
    start_time: int = Field(0, ge=0)
    interval: int = Field(0, ge=0)


class LaunchConfigModel(BaseModel):
    launch_id: str
    variant: SaleVariant = SaleVariant.dutch_auction
    owner: str
    project_owner: str
    collection: CollectionConfig
    schedule: Optional[SaleSchedule] = None
    curve: Optional[PriceCurve] = None
    flat_prices: Optional[FlatPrices] = None
    reveal: Optional[RevealConfig] = None
    allowlist: Dict[str, int] = {}

    @field_validator("owner", "project_owner")
    @classmethod
    def _check_address(cls, value: str) -> str:
        parse_address(value)
        return value

    @field_validator("allowlist")
    @classmethod
    def _check_allowlist(cls, value: Dict[str, int]) -> Dict[str, int]:
        for address, slots in value.items():
            parse_address(address)
            if slots < 0:
                raise ValueError(f"Allowlist slots for {address} must be non-negative")
        return value


# --- Events ---

class LaunchEvent(BaseModel):
    kind: str
    timestamp: int


class MintEvent(LaunchEvent):
    kind: str = "mint"
    to: str
    quantity: int
    price: int
    phase: Phase


class PreCommitEvent(LaunchEvent):
    kind: str = "pre_commit"
    requester: str
    quantity: int
    price: int


class AllocationEvent(LaunchEvent):
    kind: str = "allocation"
    to: str
    quantity: int
    queue_index: int


class RevealEvent(LaunchEvent):
    kind: str = "reveal"
    batch: int
    seed: int
    forced: bool = False


class RevealRequestedEvent(LaunchEvent):
    kind: str = "reveal_requested"
    batch: int
    request_id: int


class MintReceipt(BaseModel):
    """What a paid mint or pre-commit call settled on."""
    quantity: int
    unit_price: int
    total_cost: int
    refund: int
