import os
import logging
from typing import Optional
from dotenv import load_dotenv

# Import custom errors
from mcp_nft_launchpad.errors import ConfigurationError

"""
Configuration Management for the NFT Launchpad Server

This module handles configuration loading and validation for the launchpad. Settings are
read from environment variables (optionally through a .env file) with defaults suited to
local development, and validated so that a misconfigured server fails at startup rather
than in the middle of a sale.

Configuration Sources (in order of precedence):
1. Environment variables
2. Default values defined in this module

Environment Variables:
    LAUNCH_CONFIG_DIR: Directory (relative to this package) holding launch JSON files
    RATE_LIMIT_PER_MINUTE: Requests allowed per requester address per minute
    MAX_REVEAL_START_DELAY: Furthest a reveal start may lie in the future (seconds)
    MAX_REVEAL_INTERVAL: Longest allowed interval between two batch reveals (seconds)
    RANDOMNESS_SOURCE: "onchain" (seed derived on call) or "oracle" (seed delivered later)
"""

# Set up logger
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

RANDOMNESS_SOURCES = ("onchain", "oracle")


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")
    if min_val is not None and value < min_val:
        raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
    return value


def _get_env_choice(key: str, default: str, choices: tuple) -> str:
    """Get environment variable restricted to a fixed set of values."""
    value = _get_env_str(key, default).strip().lower()
    if value not in choices:
        raise ConfigurationError(f"Environment variable {key} must be one of {', '.join(choices)}")
    return value


# --- Pricing Constants ---
BASIS_POINTS = 10_000
MIN_AUCTION_STEPS = 4

try:
    # --- Batch Reveal Limits ---
    MAX_REVEAL_START_DELAY = _get_env_int("MAX_REVEAL_START_DELAY", 8_640_000, min_val=0)
    MAX_REVEAL_INTERVAL = _get_env_int("MAX_REVEAL_INTERVAL", 864_000, min_val=0)
    RANDOMNESS_SOURCE = _get_env_choice("RANDOMNESS_SOURCE", "onchain", RANDOMNESS_SOURCES)

    # --- Rate Limiting ---
    RATE_LIMIT_PER_MINUTE = _get_env_int("RATE_LIMIT_PER_MINUTE", 10, min_val=1, max_val=1000)

    # --- Directories ---
    LAUNCH_CONFIG_DIR = _get_env_str("LAUNCH_CONFIG_DIR", "launch_configs", required=True)

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
