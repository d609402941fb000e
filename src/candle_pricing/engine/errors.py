"""
Error taxonomy for the pricing engine.

Pure computation errors surface synchronously. Per-item catalog rejections
are not exceptions: adapters return them in ``BatchResult.errors`` and the
engine aggregates them into warnings.
"""
from typing import Optional


class PricingError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationError(PricingError):
    """A referenced ingredient (vessel, wax or wick) is not configured."""


class OptionDriftError(ConfigurationError):
    """Catalog option names no longer match the expected Wax / Wick set."""


class ValidationError(PricingError):
    """Malformed operator input. Raised before any catalog call."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class CatalogError(PricingError):
    """Base class for catalog-side failures."""


class CatalogTransportError(CatalogError):
    """The catalog is unreachable or returned a hard error.

    Fatal for the whole sync / apply; the caller should retry the whole
    operation (reconciliation is diff based, so a re-run is safe).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
