"""Shared exception types for core trading logic."""

from typing import Optional


class CriticalDataUnavailable(RuntimeError):
    """Raised when required account or store data cannot be fetched safely."""

    def __init__(self, source: str, original: Optional[Exception] = None):
        super().__init__(source)
        self.source = source
        self.original = original


class PreconditionError(RuntimeError):
    """A cycle cannot start: nothing may be executed."""


class MissingWalletConfig(PreconditionError):
    def __init__(self, user_id: str):
        super().__init__(f"No wallet configuration for user {user_id}")
        self.user_id = user_id


class MissingSettings(PreconditionError):
    def __init__(self, user_id: str):
        super().__init__(f"No bot settings for user {user_id}")
        self.user_id = user_id


class WalletMismatch(PreconditionError):
    def __init__(self, expected: str, actual: Optional[str]):
        super().__init__(f"Signer key {actual} does not match configured wallet {expected}")
        self.expected = expected
        self.actual = actual


class CycleInProgress(RuntimeError):
    """Another cycle currently holds the lease for this user."""

    def __init__(self, user_id: str, holder: Optional[str] = None):
        super().__init__(f"Cycle already running for user {user_id} (holder={holder})")
        self.user_id = user_id
        self.holder = holder


class PriceUnavailable(RuntimeError):
    """The price oracle could not value a token."""

    def __init__(self, token_address: str, original: Optional[Exception] = None):
        super().__init__(f"No price available for {token_address}")
        self.token_address = token_address
        self.original = original


class ExecutionFailure(RuntimeError):
    """Base class for swaps that did not reach a confirmed, successful state."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class QuoteUnavailable(ExecutionFailure):
    """The router has no route for the requested pair and amount."""


class ExecutionRejected(ExecutionFailure):
    """The transaction was refused on build/submit, or confirmed with an error."""


class ExecutionTimeout(ExecutionFailure):
    """Confirmation did not land within the configured wait."""


class LandedSwapNotRecorded(RuntimeError):
    """A swap confirmed on-chain but its bookkeeping could not be fully written."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


GENERIC_ERROR_MESSAGES = {
    "auth": "Authentication required",
    "unauthorized": "Invalid or expired authentication",
    "invalid": "Invalid request parameters",
    "config": "Invalid configuration",
    "internal": "An error occurred processing your request",
}


def safe_error_message(error: BaseException) -> str:
    """
    Map an exception to a generic, user-facing message.

    Raw error detail stays in trade history and logs; dashboards only ever
    receive one of GENERIC_ERROR_MESSAGES.
    """
    if isinstance(error, PreconditionError):
        return GENERIC_ERROR_MESSAGES["config"]

    message = str(error).lower()
    if "unauthorized" in message:
        return GENERIC_ERROR_MESSAGES["unauthorized"]
    if "authorization" in message or "auth" in message:
        return GENERIC_ERROR_MESSAGES["auth"]
    if "configuration" in message or "config" in message:
        return GENERIC_ERROR_MESSAGES["config"]
    if "invalid" in message or "format" in message:
        return GENERIC_ERROR_MESSAGES["invalid"]
    return GENERIC_ERROR_MESSAGES["internal"]
