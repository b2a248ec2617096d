"""Error taxonomy for classping.

Only ConfigError is fatal (raised at startup). Everything else is caught by
the tick loop or the dispatcher, logged, and the service keeps running.
"""


class ClasspingError(Exception):
    """Base error for classping."""


class ConfigError(ClasspingError):
    """Invalid configuration (bad lead time, unknown timezone, ...)."""


# ============================================================================
# Catalog
# ============================================================================


class CatalogError(ClasspingError):
    """The event catalog could not be loaded."""


class CatalogMissing(CatalogError):
    """The catalog file does not exist."""


class CatalogMalformed(CatalogError):
    """The catalog file is not a list of valid events."""


# ============================================================================
# Ledger
# ============================================================================


class LedgerReadError(ClasspingError):
    """The ledger file exists but could not be parsed."""


class LedgerWriteError(ClasspingError):
    """The ledger could not be persisted."""


# ============================================================================
# Delivery
# ============================================================================


class DeliveryError(ClasspingError):
    """Sending to a single recipient failed."""

    def __init__(self, target_id: str, reason: str):
        super().__init__(f"{target_id}: {reason}")
        self.target_id = target_id
        self.reason = reason


class NotifierUnavailable(DeliveryError):
    """The notifier is not connected (state is not READY)."""
