"""
Sale Pricing Engine

This module prices every paid sale phase of a launch. Dutch auction launches decay from a
start price to a floor price in discrete steps; the pre-commit, allowlist and public sale
prices are then derived from the last price the auction actually cleared at. Flat launches
charge fixed prices.

Dutch Auction Decay:
- duration = pre_commit_start - auction_start
- steps = duration // drop_interval, which must be at least MIN_AUCTION_STEPS
- drop_per_step = (start_price - end_price) // steps
- price(t) = start_price - ((t - auction_start) // drop_interval) * drop_per_step,
  start_price before the auction opens and end_price once the duration has elapsed

Discounts:
- Expressed in basis points (0-10000) and applied with floor division, so a small discount
  on a small price can round down to nothing: 500 bps off 8 is still 8.

All prices are integers in the smallest payment unit. Invalid curves are rejected when the
pricer is built, never while pricing.
"""
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad.config import BASIS_POINTS, MIN_AUCTION_STEPS
from mcp_nft_launchpad.errors import ConfigurationError
from mcp_nft_launchpad.schemas import FlatPrices, PriceCurve

logger = get_logger(__name__)


def apply_discount(price: int, discount_bps: int) -> int:
    """Returns ``price`` reduced by ``discount_bps`` basis points, flooring the discount."""
    return price - price * discount_bps // BASIS_POINTS


class AuctionPricer:
    """Step-wise decaying auction price plus the discounted prices derived from it."""

    def __init__(self, curve: PriceCurve, auction_start: int, pre_commit_start: int):
        self.curve = curve
        self.last_price = curve.start_price
        self.reschedule(auction_start, pre_commit_start)

    def reschedule(self, auction_start: int, pre_commit_start: int) -> None:
        """Re-derives duration and per-step drop for a new auction window, validating the curve."""
        curve = self.curve
        if curve.start_price <= curve.end_price:
            raise ConfigurationError(
                f"Auction start price ({curve.start_price}) must be greater than end price ({curve.end_price})"
            )
        if curve.drop_interval == 0:
            raise ConfigurationError("Auction drop interval must be positive")
        duration = pre_commit_start - auction_start
        if duration <= 0:
            raise ConfigurationError("Auction must end after it starts")
        steps = duration // curve.drop_interval
        if steps < MIN_AUCTION_STEPS:
            raise ConfigurationError(
                f"Auction drop interval {curve.drop_interval}s allows only {steps} step(s) in {duration}s; "
                f"at least {MIN_AUCTION_STEPS} are required"
            )
        self.auction_start = auction_start
        self.duration = duration
        self.steps = steps
        self.drop_per_step = (curve.start_price - curve.end_price) // steps
        logger.debug(f"Auction curve: duration={duration}s, steps={steps}, drop_per_step={self.drop_per_step}")

    def price_at(self, now: int) -> int:
        if now < self.auction_start:
            return self.curve.start_price
        elapsed = now - self.auction_start
        if elapsed >= self.duration:
            return self.curve.end_price
        return self.curve.start_price - (elapsed // self.curve.drop_interval) * self.drop_per_step

    def record_purchase_price(self, price: int) -> None:
        self.last_price = price

    def allowlist_price(self) -> int:
        return apply_discount(self.last_price, self.curve.allowlist_discount_bps)

    def public_price(self) -> int:
        return apply_discount(self.last_price, self.curve.public_discount_bps)


class FlatPricer:
    """Fixed allowlist and public prices for launches without an auction."""

    def __init__(self, prices: FlatPrices):
        self.prices = prices

    def allowlist_price(self) -> int:
        return self.prices.allowlist_price

    def public_price(self) -> int:
        return self.prices.public_price
