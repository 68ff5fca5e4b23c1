"""
Custom Exception Classes for the NFT Launchpad

This module defines the exception classes raised by the launch state machine, the
pre-commit queue and the batch reveal engine. Each class marks one category of
rejection so the MCP tool layer can turn it into a precise, user-facing message.

Exception Categories:
- Configuration Errors: schedule, price curve, collection or reveal invariants violated
- Phase Errors: an operation attempted outside the sale phase it belongs to
- Supply and Allowance Errors: a quantity that exceeds a remaining bound
- Payment Errors: insufficient funds attached, or a refund that could not be delivered
- Reveal Errors: a reveal requested before its time or supply condition holds
- Access Errors: a privileged operation attempted without the capability
- Input Errors: malformed tool input and rate limiting

Every rejection is atomic: when one of these is raised out of a LaunchController
operation, no allowance, counter, queue entry or seed has been changed.
"""


class ConfigurationError(Exception):
    """Raised when launch, schedule, price or reveal configuration is invalid."""


class PhaseViolationError(Exception):
    """Raised when an operation is attempted outside its required sale phase."""


class SupplyExhaustedError(Exception):
    """Raised when a requested quantity would exceed a remaining-supply bound."""


class AllowanceExceededError(Exception):
    """Raised when a quantity exceeds the caller's allowlist slots or per-address limit."""


class PaymentError(Exception):
    """Raised when the payment attached to a mint is insufficient for its cost."""


class RefundFailedError(PaymentError):
    """Raised when the overpayment refund transfer fails; the whole call is rolled back."""


class RevealNotReadyError(Exception):
    """Raised when the next batch cannot be revealed yet (time, supply or pending request)."""


class RandomnessError(Exception):
    """Raised for unknown or superseded randomness fulfilments and oracle misconfiguration."""


class UnauthorizedError(Exception):
    """Raised when the caller lacks the capability required by a privileged operation."""


class RateLimitExceededError(Exception):
    """Raised when the rate limit is exceeded for a requester."""


class ValidationError(Exception):
    """Raised when input validation fails."""
