"""Root-level routes for the pod itself.

Mounted outside /api/v1 and hidden from the OpenAPI document; the ingress
only forwards /api/* so these are reached by the kubelet alone.
"""

from fastapi import APIRouter

from internal.routes import probes

internal_router = APIRouter(include_in_schema=False)
internal_router.include_router(probes.router)
