"""
Sale Phase Clock

Derives the current sale phase from a SaleSchedule and a caller-supplied timestamp.
Nothing here advances on its own: the phase is recomputed on every request.

Phases run as contiguous half-open windows:

    Dutch auction variant: [auction, pre_commit) [pre_commit, allowlist)
                           [allowlist, public_start) [public_start, public_end)
    Flat variant:          [pre_commit, allowlist) [allowlist, public_start)
                           [public_start, public_end)

Before the first boundary (or while any boundary is unset) the launch is not started;
after the final boundary, or once the collection is sold out, it has ended.
"""
from typing import List, Tuple

from mcp_nft_launchpad.errors import ConfigurationError
from mcp_nft_launchpad.schemas import Phase, SaleSchedule, SaleVariant

_BOUNDARY_FIELDS = {
    SaleVariant.dutch_auction: (
        ("auction_start", Phase.dutch_auction),
        ("pre_commit_start", Phase.pre_commit),
        ("allowlist_start", Phase.allowlist),
        ("public_sale_start", Phase.public_sale),
        ("public_sale_end", Phase.ended),
    ),
    SaleVariant.flat: (
        ("pre_commit_start", Phase.pre_commit),
        ("allowlist_start", Phase.allowlist),
        ("public_sale_start", Phase.public_sale),
        ("public_sale_end", Phase.ended),
    ),
}


def boundary_fields(variant: SaleVariant) -> List[str]:
    return [name for name, _ in _BOUNDARY_FIELDS[variant]]


def validate_schedule(schedule: SaleSchedule, variant: SaleVariant) -> None:
    """Every boundary the variant uses must be set and strictly after the previous one."""
    previous_name, previous = None, 0
    for name in boundary_fields(variant):
        value = getattr(schedule, name)
        if value == 0:
            raise ConfigurationError(f"Schedule boundary '{name}' must be set")
        if previous_name is not None and value <= previous:
            raise ConfigurationError(f"Schedule boundary '{name}' ({value}) must be after '{previous_name}' ({previous})")
        previous_name, previous = name, value


class PhaseClock:
    def __init__(self, schedule: SaleSchedule, variant: SaleVariant = SaleVariant.dutch_auction):
        self.schedule = schedule
        self.variant = variant

    @property
    def configured(self) -> bool:
        return all(getattr(self.schedule, name) > 0 for name in boundary_fields(self.variant))

    def boundaries(self) -> List[Tuple[int, Phase]]:
        """(timestamp, phase entered at that timestamp) pairs, in order."""
        return [(getattr(self.schedule, name), phase) for name, phase in _BOUNDARY_FIELDS[self.variant]]

    def phase_at(self, now: int, sold_out: bool = False) -> Phase:
        if not self.configured:
            return Phase.not_started
        boundaries = self.boundaries()
        if now < boundaries[0][0]:
            return Phase.not_started
        if sold_out:
            return Phase.ended
        current = Phase.not_started
        for timestamp, phase in boundaries:
            if now >= timestamp:
                current = phase
        return current
