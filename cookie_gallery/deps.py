"""Shared FastAPI dependencies."""

from fastapi import Depends, Request

from cookie_gallery.core.exceptions import ConfigurationError, UnauthorizedError
from cookie_gallery.core.security import bearer_token
from cookie_gallery.services.identity import CallerIdentity
from cookie_gallery.services.persistence import PersistenceGateway
from cookie_gallery.services.registry import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_identity(request: Request, services: Services = Depends(get_services)) -> CallerIdentity:
    """Dependency: verify the `Authorization: Bearer <id token>` header and return the caller."""
    if services.identity is None:
        raise ConfigurationError("Identity verification not configured on server.")
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        raise UnauthorizedError("Unauthorized: missing or invalid Authorization header")
    return await services.identity.verify(token)


def get_persistence(services: Services = Depends(get_services)) -> PersistenceGateway:
    if services.persistence is None:
        raise ConfigurationError("Order storage not configured on server.")
    return services.persistence
