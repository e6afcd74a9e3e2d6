"""FastAPI dependency injection helpers."""

from fastapi import Depends
from starlette.requests import HTTPConnection

from ridecore.bootstrap import Container
from ridecore.domain.pricing import StaticPricingProvider
from ridecore.infrastructure.companies import CompanyDirectory
from ridecore.services.dispatch import DispatchService
from ridecore.services.lifecycle import RideLifecycleEngine


def get_container(conn: HTTPConnection) -> Container:
    """The container built in the application lifespan."""
    return conn.app.state.container


def get_engine(container: Container = Depends(get_container)) -> RideLifecycleEngine:
    return container.engine


def get_dispatch(container: Container = Depends(get_container)) -> DispatchService:
    return container.dispatch


def get_pricing(
    container: Container = Depends(get_container),
) -> StaticPricingProvider:
    return container.pricing


def get_companies(
    container: Container = Depends(get_container),
) -> CompanyDirectory:
    return container.companies
