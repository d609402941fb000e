"""
Pricing API - FastAPI router for ingredient costs, variants and the
preview / apply workflow.

The pending change set lives on one process-wide PricingWorkflow (see
api.state), not per operator session: every client stages into and applies
the same set, and the last preview wins.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from ..engine.errors import PricingError
from ..engine.models import ApplyResult, PricingChangeSet, PricingPreview
from .errors import to_http_error
from .state import Services, get_services

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


# Pydantic models for API
class ChangeSetRequest(BaseModel):
    """Sparse cost overrides keyed by ingredient identity key."""
    wax: dict[str, Any] = {}
    wick: dict[str, Any] = {}
    vessel: dict[str, Any] = {}


class ApplyRequest(BaseModel):
    """Request model for applying the previewed change set."""
    confirmation: str


class PriceChangeResponse(BaseModel):
    productTitle: str
    variantTitle: str
    currentPrice: str
    newPrice: str
    changeDescription: str
    wax: str
    wick: str
    container: str
    kind: str
    largeChange: bool
    changePct: Optional[float]


class PreviewResponse(BaseModel):
    changes: list[PriceChangeResponse]
    summary: dict
    thresholdPct: float
    warnings: list[str]


class ApplyResponse(BaseModel):
    variantsUpdated: int
    variantsPlanned: int
    partial: bool
    warnings: list[str]
    largeChangeWarnings: list[str]
    trace: str


def _preview_response(preview: PricingPreview) -> PreviewResponse:
    return PreviewResponse(
        changes=[
            PriceChangeResponse(
                productTitle=c.product_title,
                variantTitle=c.variant_title,
                currentPrice=c.current_price,
                newPrice=c.new_price,
                changeDescription=c.change_description,
                wax=c.wax,
                wick=c.wick,
                container=c.container,
                kind=c.kind.value,
                largeChange=c.large_change,
                changePct=c.change_pct,
            )
            for c in preview.changes
        ],
        summary=preview.summary.to_dict(),
        thresholdPct=preview.threshold_pct,
        warnings=preview.warnings,
    )


def _apply_response(result: ApplyResult) -> ApplyResponse:
    return ApplyResponse(
        variantsUpdated=result.variants_updated,
        variantsPlanned=result.variants_planned,
        partial=result.partial,
        warnings=result.warnings,
        largeChangeWarnings=result.large_change_warnings,
        trace=result.get_trace_text(),
    )


# Endpoints

@router.get("/config")
def get_config(services: Services = Depends(get_services)):
    """Current ingredient collections."""
    try:
        return services.store.load().to_dict()
    except PricingError as e:
        raise to_http_error(e)


@router.get("/config/catalog")
def get_catalog_config(services: Services = Depends(get_services)):
    """Ingredient collections rebuilt from the catalog's metafields."""
    try:
        return services.pricing.catalog_config().to_dict()
    except PricingError as e:
        raise to_http_error(e)


@router.get("/variants")
def list_variants(vessel: Optional[str] = None, services: Services = Depends(get_services)):
    """Generated combinations, optionally for a single vessel key."""
    try:
        combinations = services.generator.generate(services.store.load())
    except PricingError as e:
        raise to_http_error(e)
    if vessel:
        combinations = [c for c in combinations if c.container == vessel]
    return [c.to_row() for c in combinations]


@router.get("/variants/export")
def export_variants(services: Services = Depends(get_services)):
    """Generated combinations as a CSV download."""
    try:
        combinations = services.generator.generate(services.store.load())
    except PricingError as e:
        raise to_http_error(e)
    csv_text = services.generator.to_dataframe(combinations).to_csv(index=False)
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=variant_combinations.csv"},
    )


@router.post("/preview", response_model=PreviewResponse)
def preview_changes(body: ChangeSetRequest, services: Services = Depends(get_services)):
    """Replace the pending change set with ``body`` and diff it against the catalog."""
    workflow = services.pricing
    try:
        change_set = PricingChangeSet.from_dict(body.model_dump())
        workflow.cancel()
        workflow.stage(change_set)
        return _preview_response(workflow.preview())
    except PricingError as e:
        raise to_http_error(e)


@router.post("/apply", response_model=ApplyResponse)
def apply_changes(body: ApplyRequest, services: Services = Depends(get_services)):
    """Apply the previewed change set after a matching price confirmation."""
    try:
        return _apply_response(services.pricing.apply(body.confirmation))
    except PricingError as e:
        raise to_http_error(e)


@router.post("/cancel")
async def cancel_changes(services: Services = Depends(get_services)):
    """Discard the pending change set."""
    services.pricing.cancel()
    return {"success": True}


@router.get("/pending")
async def get_pending(services: Services = Depends(get_services)):
    change_set = services.pricing.change_set
    if change_set.is_empty() and services.pricing.last_preview is None:
        raise HTTPException(status_code=404, detail="No pending changes")
    return {
        "wax": change_set.waxes,
        "wick": change_set.wicks,
        "vessel": change_set.vessels,
        "previewed": services.pricing.last_preview is not None,
    }
