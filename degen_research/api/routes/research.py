from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from degen_research.api import deps
from degen_research.errors import ConfigurationError, ResearchError
from degen_research.models.schemas import ErrorResponse, ResearchRequestBody
from degen_research.services import logger as log_service

router = APIRouter(prefix="/api/research", tags=["research"])


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, details=details).model_dump(exclude_none=True),
    )


def _resolve_orchestrator():
    """Resolve lazily so a missing key becomes a 500 body instead of a crash."""
    try:
        return deps.get_orchestrator()
    except ConfigurationError as exc:
        log_service.log_event(
            event_type="configuration_error",
            message="Research requested without configured API keys",
            error=str(exc),
        )
        return None


@router.post("")
async def create_research(
    body: ResearchRequestBody,
    orchestrator=Depends(_resolve_orchestrator),
):
    """Run the full research pipeline and return the report."""
    if not body.project_name.strip():
        return _error(400, "Project name is required")

    if orchestrator is None:
        return _error(500, "API keys not configured on server")

    request = body.to_request()
    try:
        report = await orchestrator.generate_report(request)
    except ResearchError as exc:
        log_service.log_event(
            event_type="research_failed",
            message=f"Research failed for {request.project_name}",
            phase=exc.phase,
            error=str(exc),
        )
        return _error(500, "Failed to generate research report", str(exc))

    return report.to_dict()
