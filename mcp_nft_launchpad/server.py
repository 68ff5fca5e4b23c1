"""
NFT Launchpad Server - MCP Server Implementation

This module exposes phased NFT collection launches as MCP tools. Each launch runs a
Dutch auction (or a flat-price variant), a pre-commit queue for allowlisted buyers, an
allowlist sale, a public sale and a batch reveal of metadata.

Key Features:
- Multi-launch support with JSON launch definitions (see launch_manager)
- Dutch auction with step-wise price decay and discounted follow-up phases
- FIFO pre-commit queue settled in caller-chosen chunks
- Batch reveal with an on-call or oracle randomness source
- Rate limiting per requester address
- Every rejection returned as a readable message, never as a stack trace

Time:
- Every tool reads the current time once (``int(time.time())``) and passes it down, so a
  whole request is evaluated against a single timestamp

Payments:
- ``payment`` is the amount attached to a paid call, in the smallest payment unit; any
  overpayment is refunded to the requester after accounting

License: MIT-0
"""

import json
import time
from typing import Callable, List, Optional

from pydantic import Field
from pydantic import ValidationError as SchemaValidationError

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad import errors
from mcp_nft_launchpad import launch_manager
from mcp_nft_launchpad import rate_limiter
from mcp_nft_launchpad.launch_controller import LaunchController
from mcp_nft_launchpad.schemas import (
    FlatPrices,
    LaunchConfigModel,
    PriceCurve,
    RevealConfig,
    SaleSchedule,
    parse_address,
)

logger = get_logger(__name__)

# Constants
MAX_LAUNCH_ID_LENGTH = 100
MAX_CONFIG_JSON_LENGTH = 20_000

# Rejections that are reported back verbatim
LAUNCH_ERRORS = (
    errors.ConfigurationError,
    errors.PhaseViolationError,
    errors.SupplyExhaustedError,
    errors.AllowanceExceededError,
    errors.PaymentError,
    errors.RevealNotReadyError,
    errors.RandomnessError,
    errors.UnauthorizedError,
    errors.ValidationError,
)

SCHEDULE_SETTERS = {
    "auction_start": LaunchController.set_auction_start,
    "pre_commit_start": LaunchController.set_pre_commit_start,
    "allowlist_start": LaunchController.set_allowlist_start,
    "public_sale_start": LaunchController.set_public_sale_start,
    "public_sale_end": LaunchController.set_public_sale_end,
}

# --- Server Setup ---
mcp = FastMCP(name="NFT Launchpad Server")


def validate_launch_id(launch_id: str) -> None:
    if not launch_id or not isinstance(launch_id, str):
        raise ValueError("Launch ID must be a non-empty string")
    if len(launch_id) > MAX_LAUNCH_ID_LENGTH:
        raise ValueError("Launch ID is too long")


def require_launch(launch_id: str) -> LaunchController:
    validate_launch_id(launch_id)
    launch = launch_manager.get_launch(launch_id)
    if launch is None:
        raise LookupError(f"Launch with id {launch_id} not found.")
    return launch


def log_operation_error(operation: str, launch_id: str, error: Exception, requester: str) -> None:
    logger.error(f"{operation} failed for launch '{launch_id}': {error}, requester: {requester}")


def run_operation(operation: str, launch_id: str, requester: str, action: Callable[[LaunchController, int], str]) -> str:
    """
    Runs one launch operation on behalf of ``requester`` and renders the outcome.

    Rate limiting, launch lookup and the current timestamp are handled here; ``action``
    receives the controller and the timestamp and returns the success message.
    """
    try:
        rate_limiter.enforce_rate_limit(requester)
        launch = require_launch(launch_id)
        now = int(time.time())
        return action(launch, now)
    except errors.RateLimitExceededError as e:
        return str(e)
    except LookupError as e:
        logger.warning(f"{operation}: {e}")
        return str(e)
    except LAUNCH_ERRORS as e:
        log_operation_error(operation, launch_id, e, requester)
        return f"Error: {e}"
    except ValueError as e:
        log_operation_error(operation, launch_id, e, requester)
        return f"Error: Invalid input - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error in {operation} for launch '{launch_id}': {e}")
        return "An unexpected server error occurred"


def describe_receipt(verb: str, launch: LaunchController, receipt) -> str:
    symbol = launch.collection.symbol
    message = f"{verb} {receipt.quantity} {symbol} at {receipt.unit_price} each (total {receipt.total_cost})."
    if receipt.refund:
        message += f" Refunded {receipt.refund}."
    return message


# --- Launch Information ---

@mcp.tool()
async def get_launch_info(context: Context, launch_id: str = Field(..., description="The launch ID.")) -> str:
    """Get the live state of a launch: phase, price, supply and reveal progress."""
    try:
        launch = require_launch(launch_id)
        now = int(time.time())
        info = {
            "launch_id": launch.launch_id,
            "variant": launch.variant.value,
            "collection": launch.collection.model_dump(),
            "schedule": launch.schedule.model_dump(),
            "phase": launch.current_phase(now).value,
            "price": launch.current_price(now) if launch.pricer is not None else None,
            "total_minted": launch.registry.total_minted(),
            "total_supply_including_pending": launch.total_supply_including_pending(),
            "pending_pre_commits": launch.ledger.outstanding,
            "revealed": launch.reveal.last_revealed if launch.reveal is not None else None,
            "reveal_pending_request": launch.pending_request,
            "has_next_reveal": launch.has_next_reveal(now),
        }
        return json.dumps(info, indent=2)
    except LookupError as e:
        logger.warning(str(e))
        return str(e)
    except ValueError as e:
        logger.error(f"Invalid launch ID provided: {e}")
        return f"Invalid launch ID: {e}"
    except Exception as e:
        logger.exception(f"Unexpected error getting launch info for {launch_id}: {e}")
        return "An unexpected error occurred while retrieving launch information."


@mcp.tool()
async def create_launch(context: Context, config_json: str = Field(..., description="The launch definition as a JSON string.")) -> str:
    """Creates a new launch (or stores a new definition for an existing one) from a JSON string."""
    try:
        if not config_json or not isinstance(config_json, str):
            raise ValueError("Configuration JSON must be a non-empty string")
        if len(config_json) > MAX_CONFIG_JSON_LENGTH:
            raise ValueError("Configuration JSON is too large")

        launch_config = LaunchConfigModel.model_validate(json.loads(config_json))
        validate_launch_id(launch_config.launch_id)

        if launch_manager.add_or_update_launch(launch_config):
            logger.info(f"Launch '{launch_config.launch_id}' created/updated successfully")
            return f"Launch '{launch_config.launch_id}' created/updated successfully."
        return f"Error saving launch configuration for '{launch_config.launch_id}'."

    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON for create_launch request: {e}")
        return "Error: Invalid JSON format provided. Please check your JSON syntax."
    except SchemaValidationError as e:
        logger.error(f"Invalid launch configuration provided to create_launch: {e}")
        return f"Error: Invalid launch configuration - {e}"
    except errors.ConfigurationError as e:
        logger.error(f"Inconsistent launch configuration provided to create_launch: {e}")
        return f"Error: {e}"
    except ValueError as e:
        logger.error(f"Validation error in create_launch: {e}")
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Unexpected error creating launch via create_launch: {e}")
        return "An unexpected server error occurred while creating the launch."


# --- Owner Configuration ---

@mcp.tool()
async def configure_schedule(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the launch owner."),
    schedule_json: str = Field(..., description="Phase boundaries as a JSON object of unix timestamps."),
    curve_json: Optional[str] = Field(None, description="Auction price curve JSON (Dutch auction launches)."),
    flat_prices_json: Optional[str] = Field(None, description="Fixed prices JSON (flat launches)."),
) -> str:
    """Sets the phase boundaries and prices of a launch that has no schedule yet."""
    def action(launch: LaunchController, now: int) -> str:
        schedule = SaleSchedule.model_validate_json(schedule_json)
        curve = PriceCurve.model_validate_json(curve_json) if curve_json else None
        flat_prices = FlatPrices.model_validate_json(flat_prices_json) if flat_prices_json else None
        launch.configure_schedule(parse_address(requester), now, schedule, curve=curve, flat_prices=flat_prices)
        return f"Schedule of launch '{launch_id}' configured."

    return run_operation("Schedule configuration", launch_id, requester, action)


@mcp.tool()
async def update_schedule_boundary(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the launch owner."),
    boundary: str = Field(..., description="One of: " + ", ".join(SCHEDULE_SETTERS)),
    timestamp: int = Field(..., description="New unix timestamp for the boundary."),
) -> str:
    """Moves one phase boundary that has not been reached yet, keeping the boundaries ordered."""
    def action(launch: LaunchController, now: int) -> str:
        setter = SCHEDULE_SETTERS.get(boundary)
        if setter is None:
            raise ValueError(f"Unknown boundary '{boundary}'")
        setter(launch, parse_address(requester), now, timestamp)
        return f"Boundary '{boundary}' of launch '{launch_id}' set to {timestamp}."

    return run_operation("Boundary update", launch_id, requester, action)


@mcp.tool()
async def configure_reveal(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the launch owner."),
    batch_size: int = Field(..., description="Items per reveal batch; must divide the collection size."),
    start_time: int = Field(0, description="Earliest unix timestamp of the first reveal."),
    interval: int = Field(0, description="Seconds between two batch reveals."),
) -> str:
    """Enables the batch reveal of a launch."""
    def action(launch: LaunchController, now: int) -> str:
        reveal = RevealConfig(batch_size=batch_size, start_time=start_time, interval=interval)
        launch.configure_reveal(parse_address(requester), now, reveal)
        return f"Batch reveal of launch '{launch_id}' configured."

    return run_operation("Reveal configuration", launch_id, requester, action)


@mcp.tool()
async def update_reveal_setting(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the launch owner."),
    setting: str = Field(..., description="One of: batch_size, start_time, interval."),
    value: int = Field(..., description="New value for the setting."),
) -> str:
    """Changes a batch reveal setting before the first batch is revealed."""
    def action(launch: LaunchController, now: int) -> str:
        caller = parse_address(requester)
        if setting == "batch_size":
            launch.set_reveal_batch_size(caller, value)
        elif setting == "start_time":
            launch.set_reveal_start_time(caller, now, value)
        elif setting == "interval":
            launch.set_reveal_interval(caller, now, value)
        else:
            raise ValueError(f"Unknown reveal setting '{setting}'")
        return f"Reveal {setting} of launch '{launch_id}' set to {value}."

    return run_operation("Reveal update", launch_id, requester, action)


@mcp.tool()
async def seed_allowlist(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the launch owner."),
    addresses: List[str] = Field(..., description="Allowlisted addresses."),
    amounts: List[int] = Field(..., description="Allowlist slots, one per address."),
) -> str:
    """Grants allowlist slots, replacing any previous allowance of the listed addresses."""
    def action(launch: LaunchController, now: int) -> str:
        launch.seed_allowlist(parse_address(requester), [parse_address(a) for a in addresses], amounts)
        return f"Allowlist of launch '{launch_id}' updated for {len(addresses)} address(es)."

    return run_operation("Allowlist seeding", launch_id, requester, action)


@mcp.tool()
async def dev_mint(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the project owner."),
    quantity: int = Field(..., description="Number of items to mint."),
) -> str:
    """Mints from the project owner's reserved allocation."""
    def action(launch: LaunchController, now: int) -> str:
        launch.dev_mint(parse_address(requester), now, quantity)
        return f"Minted {quantity} {launch.collection.symbol} to the project owner."

    return run_operation("Dev mint", launch_id, requester, action)


# --- Sales ---

@mcp.tool()
async def mint_auction(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Buyer address."),
    quantity: int = Field(..., description="Number of items to buy; clamped to what the auction has left."),
    payment: int = Field(..., description="Amount attached, in the smallest payment unit."),
) -> str:
    """Buys items in the Dutch auction at the current decayed price."""
    def action(launch: LaunchController, now: int) -> str:
        receipt = launch.mint_auction(parse_address(requester), now, quantity, payment)
        return describe_receipt("Minted", launch, receipt)

    return run_operation("Auction mint", launch_id, requester, action)


@mcp.tool()
async def pre_commit(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Allowlisted buyer address."),
    quantity: int = Field(..., description="Number of items to reserve."),
    payment: int = Field(..., description="Amount attached, in the smallest payment unit."),
) -> str:
    """Pays now for items delivered once the allowlist phase opens."""
    def action(launch: LaunchController, now: int) -> str:
        receipt = launch.pre_commit(parse_address(requester), now, quantity, payment)
        return describe_receipt("Pre-committed", launch, receipt)

    return run_operation("Pre-commit", launch_id, requester, action)


@mcp.tool()
async def settle_pending(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the caller running the settlement."),
    max_quantity: int = Field(..., description="Most items to deliver in this call."),
) -> str:
    """Delivers queued pre-commits in first-come, first-served order."""
    def action(launch: LaunchController, now: int) -> str:
        allocations = launch.settle_pending(parse_address(requester), now, max_quantity)
        if not allocations:
            return f"Nothing pending for launch '{launch_id}'."
        delivered = sum(allocation.quantity for allocation in allocations)
        return f"Delivered {delivered} item(s) to {len(allocations)} pre-commit(s); {launch.ledger.outstanding} still pending."

    return run_operation("Settlement", launch_id, requester, action)


@mcp.tool()
async def mint_allowlist(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Allowlisted buyer address."),
    quantity: int = Field(..., description="Number of items to buy."),
    payment: int = Field(..., description="Amount attached, in the smallest payment unit."),
) -> str:
    """Buys items with allowlist slots at the allowlist price."""
    def action(launch: LaunchController, now: int) -> str:
        receipt = launch.mint_allowlist(parse_address(requester), now, quantity, payment)
        return describe_receipt("Minted", launch, receipt)

    return run_operation("Allowlist mint", launch_id, requester, action)


@mcp.tool()
async def mint_public(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Buyer address."),
    quantity: int = Field(..., description="Number of items to buy."),
    payment: int = Field(..., description="Amount attached, in the smallest payment unit."),
) -> str:
    """Buys items in the public sale."""
    def action(launch: LaunchController, now: int) -> str:
        receipt = launch.mint_public(parse_address(requester), now, quantity, payment)
        return describe_receipt("Minted", launch, receipt)

    return run_operation("Public mint", launch_id, requester, action)


# --- Reveal ---

@mcp.tool()
async def reveal_next(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the caller triggering the reveal."),
) -> str:
    """Reveals the next batch, or files a randomness request when an oracle is configured."""
    def action(launch: LaunchController, now: int) -> str:
        seed = launch.reveal_next(parse_address(requester), now)
        if seed is None:
            return f"Randomness request {launch.pending_request} filed for launch '{launch_id}'."
        return f"Revealed batch {launch.reveal.next_batch - 1} of launch '{launch_id}'."

    return run_operation("Reveal", launch_id, requester, action)


@mcp.tool()
async def force_reveal(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    requester: str = Field(..., description="Address of the launch owner."),
) -> str:
    """Reveals the next batch immediately, ignoring time and supply conditions."""
    def action(launch: LaunchController, now: int) -> str:
        launch.force_reveal(parse_address(requester), now)
        return f"Force-revealed batch {launch.reveal.next_batch - 1} of launch '{launch_id}'."

    return run_operation("Forced reveal", launch_id, requester, action)


@mcp.tool()
async def fulfill_randomness(
    context: Context,
    request_id: int = Field(..., description="The randomness request ID."),
) -> str:
    """Delivers fresh random words to a pending randomness request (oracle mode only)."""
    try:
        if launch_manager.oracle is None:
            raise errors.RandomnessError("No randomness oracle is configured (RANDOMNESS_SOURCE=onchain)")
        launch_manager.oracle.fulfill(request_id)
        return f"Randomness request {request_id} fulfilled."
    except errors.RandomnessError as e:
        logger.error(f"Randomness fulfilment {request_id} failed: {e}")
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Unexpected error fulfilling randomness request {request_id}: {e}")
        return "An unexpected server error occurred"


@mcp.tool()
async def resolve_metadata_index(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    item_id: int = Field(..., description="The item ID."),
) -> str:
    """Returns the metadata index of an item, or reports that it is not revealed yet."""
    try:
        launch = require_launch(launch_id)
        index = launch.resolve_metadata_index(item_id)
        if index is None:
            return f"Item {item_id} is not revealed yet."
        return str(index)
    except LookupError as e:
        return str(e)
    except errors.ValidationError as e:
        return f"Error: {e}"
    except ValueError as e:
        return f"Error: Invalid input - {e}"
    except Exception as e:
        logger.exception(f"Unexpected error resolving item {item_id} of launch {launch_id}: {e}")
        return "An unexpected server error occurred"


@mcp.tool()
async def get_events(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    limit: int = Field(50, description="Most recent events to return."),
) -> str:
    """Returns the most recent events of a launch as JSON."""
    try:
        launch = require_launch(launch_id)
        recent = launch.events[-limit:] if limit > 0 else []
        return json.dumps([event.model_dump(mode="json") for event in recent], indent=2)
    except LookupError as e:
        return str(e)
    except ValueError as e:
        return f"Invalid launch ID: {e}"


# --- Main Execution ---
if __name__ == "__main__":
    logger.info("Starting NFT Launchpad MCP Server...")
    logger.info(f"Loaded {len(launch_manager.launches)} launch(es).")

    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
    except Exception as e:
        logger.exception(f"Server error: {e}")
    finally:
        logger.info("NFT Launchpad MCP Server stopped.")
