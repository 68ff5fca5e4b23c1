import pytest

from mcp_nft_launchpad.errors import ConfigurationError
from mcp_nft_launchpad.phases import PhaseClock, boundary_fields, validate_schedule
from mcp_nft_launchpad.schemas import Phase, SaleSchedule, SaleVariant

SCHEDULE = SaleSchedule(
    auction_start=100,
    pre_commit_start=200,
    allowlist_start=300,
    public_sale_start=400,
    public_sale_end=500,
)


@pytest.mark.parametrize("now,expected", [
    (0, Phase.not_started),
    (99, Phase.not_started),
    (100, Phase.dutch_auction),
    (199, Phase.dutch_auction),
    (200, Phase.pre_commit),
    (300, Phase.allowlist),
    (400, Phase.public_sale),
    (499, Phase.public_sale),
    (500, Phase.ended),
    (10_000, Phase.ended),
])
def test_phase_windows_are_half_open(now, expected):
    assert PhaseClock(SCHEDULE).phase_at(now) == expected


def test_phase_never_moves_backwards():
    clock = PhaseClock(SCHEDULE)
    ranks = [clock.phase_at(now).rank for now in range(0, 600)]
    assert ranks == sorted(ranks)


def test_sold_out_ends_the_sale_once_started():
    clock = PhaseClock(SCHEDULE)
    assert clock.phase_at(150, sold_out=True) == Phase.ended
    assert clock.phase_at(50, sold_out=True) == Phase.not_started


def test_unconfigured_schedule_is_not_started():
    clock = PhaseClock(SaleSchedule(auction_start=100))
    assert not clock.configured
    assert clock.phase_at(1_000_000) == Phase.not_started


def test_flat_variant_has_no_auction_window():
    schedule = SaleSchedule(pre_commit_start=200, allowlist_start=300, public_sale_start=400, public_sale_end=500)
    validate_schedule(schedule, SaleVariant.flat)
    clock = PhaseClock(schedule, SaleVariant.flat)
    assert clock.configured
    assert clock.phase_at(150) == Phase.not_started
    assert clock.phase_at(200) == Phase.pre_commit
    assert "auction_start" not in boundary_fields(SaleVariant.flat)


def test_validate_schedule_requires_every_boundary():
    with pytest.raises(ConfigurationError):
        validate_schedule(SCHEDULE.model_copy(update={"allowlist_start": 0}), SaleVariant.dutch_auction)


def test_validate_schedule_requires_strictly_increasing_boundaries():
    validate_schedule(SCHEDULE, SaleVariant.dutch_auction)
    with pytest.raises(ConfigurationError):
        validate_schedule(SCHEDULE.model_copy(update={"allowlist_start": 200}), SaleVariant.dutch_auction)
    with pytest.raises(ConfigurationError):
        validate_schedule(SCHEDULE.model_copy(update={"public_sale_end": 350}), SaleVariant.dutch_auction)
