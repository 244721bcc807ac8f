"""Handles created by create_app() and stored on app.state."""
from fastapi import Request

from app.core.config import Settings
from app.services.entitlement_cache import EntitlementCache


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> EntitlementCache:
    return request.app.state.cache
