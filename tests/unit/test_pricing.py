import pytest

from mcp_nft_launchpad.errors import ConfigurationError
from mcp_nft_launchpad.pricing import AuctionPricer, FlatPricer, apply_discount
from mcp_nft_launchpad.schemas import FlatPrices, PriceCurve


def make_pricer(**overrides) -> AuctionPricer:
    curve = dict(start_price=10_000, end_price=2_000, drop_interval=100,
                 allowlist_discount_bps=1_000, public_discount_bps=500)
    curve.update(overrides)
    return AuctionPricer(PriceCurve(**curve), auction_start=0, pre_commit_start=400)


def test_price_decays_in_steps():
    pricer = AuctionPricer(PriceCurve(start_price=10, end_price=2, drop_interval=100), 0, 400)
    assert pricer.drop_per_step == 2
    assert pricer.price_at(0) == 10
    assert pricer.price_at(99) == 10
    assert pricer.price_at(150) == 8
    assert pricer.price_at(399) == 4
    assert pricer.price_at(400) == 2
    assert pricer.price_at(10_000) == 2


def test_price_before_the_auction_is_the_start_price():
    pricer = AuctionPricer(PriceCurve(start_price=10, end_price=2, drop_interval=100), 1_000, 1_400)
    assert pricer.price_at(500) == 10


def test_price_is_non_increasing_and_bounded():
    pricer = make_pricer()
    prices = [pricer.price_at(t) for t in range(-50, 500, 7)]
    assert prices == sorted(prices, reverse=True)
    assert all(2_000 <= price <= 10_000 for price in prices)


def test_discounts_floor_small_amounts():
    assert apply_discount(8, 500) == 8
    assert apply_discount(8_000, 1_000) == 7_200
    assert apply_discount(100, 10_000) == 0
    assert apply_discount(100, 0) == 100


def test_follow_up_prices_derive_from_the_last_auction_price():
    pricer = make_pricer()
    # Nothing sold yet: discounts apply to the start price.
    assert pricer.allowlist_price() == 9_000
    assert pricer.public_price() == 9_500

    pricer.record_purchase_price(pricer.price_at(150))
    assert pricer.last_price == 8_000
    assert pricer.allowlist_price() == 7_200
    assert pricer.public_price() == 7_600


@pytest.mark.parametrize("overrides", [
    {"start_price": 2_000},
    {"end_price": 20_000},
    {"drop_interval": 0},
    {"drop_interval": 101},
])
def test_invalid_curves_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        make_pricer(**overrides)


def test_auction_window_must_be_positive():
    curve = PriceCurve(start_price=10, end_price=2, drop_interval=1)
    with pytest.raises(ConfigurationError):
        AuctionPricer(curve, auction_start=100, pre_commit_start=100)


def test_reschedule_keeps_previous_curve_on_failure():
    pricer = make_pricer()
    with pytest.raises(ConfigurationError):
        pricer.reschedule(0, 300)
    assert pricer.duration == 400
    pricer.reschedule(0, 800)
    assert pricer.steps == 8
    assert pricer.drop_per_step == 1_000


def test_flat_prices():
    pricer = FlatPricer(FlatPrices(allowlist_price=50, public_price=80))
    assert pricer.allowlist_price() == 50
    assert pricer.public_price() == 80
