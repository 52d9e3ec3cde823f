"""
FastAPI dependency injection module for the listing audit service.

Endpoint handlers receive the Settings singleton and the application's
AuditService through these dependencies, so tests can override either one via
`app.dependency_overrides`.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_audit_service: Returns the AuditService built at startup (app.state)
- SettingsDep: Type alias for injecting Settings into endpoints
- AuditServiceDep: Type alias for injecting the AuditService into endpoints

Usage Examples:
    @router.post("/audits")
    async def create_audit(
        request: AuditRequest,
        service: AuditServiceDep,
    ) -> AuditResponse:
        result, record = await service.audit_and_snapshot(request.metadata, request.context)
        ...
"""

from typing import Annotated

from fastapi import Depends, Request

from listing_audit.core.config import Settings, get_settings
from listing_audit.services.audit import AuditService


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() to enable FastAPI's
    dependency override mechanism for testing:

        app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
    """
    return get_settings()


# =============================================================================
# Audit Service Dependency
# =============================================================================

def get_audit_service(request: Request) -> AuditService:
    """
    Return the AuditService created in the application lifespan.

    The service owns the rule resolver and its cache, so one instance is shared
    by every request.

    Raises:
        RuntimeError: If the application started without building a service.
    """
    service = getattr(request.app.state, "audit_service", None)
    if service is None:
        raise RuntimeError("AuditService is not initialized")
    return service


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

# Usage: async def endpoint(service: AuditServiceDep)
AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]
