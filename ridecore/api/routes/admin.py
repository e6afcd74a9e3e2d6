"""
Admin endpoints
===============

GET /api/v1/admin/health               -- simple health check
GET /api/v1/admin/pricing              -- current pricing configuration
PUT /api/v1/admin/pricing              -- change pricing (new rides only)
GET /api/v1/admin/pricing/quote        -- price every service for a distance
PUT /api/v1/admin/companies/{id}       -- register / update a company
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

from ridecore.api.dependencies import get_companies, get_pricing
from ridecore.api.middleware import RATE_LIMIT, limiter
from ridecore.api.schemas import (
    CompanyResponse,
    CompanyUpsert,
    HealthResponse,
    PricingSettingsSchema,
    PricingSettingsUpdate,
    QuoteResponse,
)
from ridecore.domain.pricing import PricingCalculator, StaticPricingProvider
from ridecore.infrastructure.companies import CompanyDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _pricing_schema(provider: StaticPricingProvider) -> PricingSettingsSchema:
    return PricingSettingsSchema(
        **{k: float(v) for k, v in provider.get_settings().to_dict().items()}
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.get(
    "/pricing",
    response_model=PricingSettingsSchema,
    summary="Current pricing configuration",
)
@limiter.limit(RATE_LIMIT)
async def get_pricing_settings(
    request: Request,
    provider: StaticPricingProvider = Depends(get_pricing),
):
    return _pricing_schema(provider)


@router.put(
    "/pricing",
    response_model=PricingSettingsSchema,
    summary="Update pricing configuration",
    description="Applies to rides created afterwards; existing prices never change.",
)
@limiter.limit(RATE_LIMIT)
async def update_pricing_settings(
    request: Request,
    body: PricingSettingsUpdate,
    provider: StaticPricingProvider = Depends(get_pricing),
):
    changes = body.model_dump(exclude_none=True)
    provider.update(**changes)
    logger.info("Pricing updated: %s", ", ".join(sorted(changes)) or "no changes")
    return _pricing_schema(provider)


@router.get(
    "/pricing/quote",
    response_model=QuoteResponse,
    summary="Simulate prices for a distance",
    description="Services out of range for the distance are reported as null.",
)
@limiter.limit(RATE_LIMIT)
async def quote(
    request: Request,
    distance_km: float = Query(..., ge=0, le=10_000),
    provider: StaticPricingProvider = Depends(get_pricing),
):
    prices = PricingCalculator(provider).quote(distance_km)
    return QuoteResponse(distance_km=distance_km, prices=prices)


@router.put(
    "/companies/{company_id}",
    response_model=CompanyResponse,
    summary="Register or update a corporate account",
)
@limiter.limit(RATE_LIMIT)
async def upsert_company(
    request: Request,
    company_id: str,
    body: CompanyUpsert,
    companies: CompanyDirectory = Depends(get_companies),
):
    company = await companies.put(body.to_domain(company_id))
    return CompanyResponse.from_domain(company)
