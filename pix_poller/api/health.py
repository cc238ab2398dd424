"""Liveness endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    registry = request.app.state.registry
    return {
        "status": "ok",
        "gateway": registry.gateway.name,
        "pollers": len(registry),
        "active_pollers": registry.active_count,
    }
