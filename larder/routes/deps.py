from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..db import get_session_factory
from ..services.container import PlannerServices, build_services


def get_services(request: Request) -> PlannerServices:
    """Planner services shared by every request on this app instance."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        try:
            session_factory = get_session_factory()
        except RuntimeError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
        services = build_services(session_factory)
        request.app.state.services = services
    return services
