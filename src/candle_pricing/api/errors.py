"""Mapping of engine errors onto HTTP errors."""
from fastapi import HTTPException

from ..engine.errors import CatalogError, ConfigurationError, PricingError, ValidationError


def to_http_error(e: PricingError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=e.to_dict())
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, CatalogError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))
