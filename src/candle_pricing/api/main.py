import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from candle_pricing import __version__
from candle_pricing.api.pricing_api import router as pricing_router
from candle_pricing.api.state import Services, get_services
from candle_pricing.api.vessels_api import router as vessels_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(
    title="Candle Pricing API",
    description="Variant generation and pricing workflow for custom candles",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pricing_router)
app.include_router(vessels_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "Candle Pricing API Active"}


@app.get("/system/status")
def get_status(services: Services = Depends(get_services)):
    settings = services.settings
    catalog = services.store.load()
    return {
        "catalog_backend": settings.catalog_backend,
        "vessels": len(catalog.vessels),
        "waxes": len(catalog.waxes),
        "wicks": len(catalog.wicks),
        "large_change_threshold_pct": settings.large_change_threshold_pct,
    }
