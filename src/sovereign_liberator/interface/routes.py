"""API routes — thin controllers that delegate to the use case."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sovereign_liberator.infrastructure.config import Settings
from sovereign_liberator.interface.dependencies import get_app_settings, get_use_case
from sovereign_liberator.interface.schemas import LiberateRequest, LiberateResponse
from sovereign_liberator.services.liberate_project import LiberateProjectUseCase

router = APIRouter()


@router.post(
    "/liberate",
    response_model=LiberateResponse,
    responses={
        400: {"description": "Missing project name or malformed credentials"},
        422: {"description": "Request body does not match the schema"},
    },
)
async def liberate(
    body: LiberateRequest,
    use_case: LiberateProjectUseCase = Depends(get_use_case),
    settings: Settings = Depends(get_app_settings),
) -> LiberateResponse:
    """Publish, migrate and deploy a project; per-phase outcomes are in ``results``."""
    fallback = settings.github_token.get_secret_value() if settings.github_token else None
    report = await use_case.execute(body.to_domain(fallback_github_token=fallback))
    return LiberateResponse.from_domain(report)
