from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from degen_research.models.research import ResearchRequest


# --- Requests ---


class ResearchRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_name: str = Field(default="", alias="projectName")
    website: str | None = ""
    twitter: str | None = ""
    contract_address: str | None = Field(default="", alias="contractAddress")

    def to_request(self) -> ResearchRequest:
        return ResearchRequest(
            project_name=self.project_name.strip(),
            website=(self.website or "").strip(),
            twitter=(self.twitter or "").strip(),
            contract_address=(self.contract_address or "").strip(),
        )


# --- Responses ---


class SourceResponse(BaseModel):
    title: str
    url: str
    content: str
    qualityScore: float = 0.0
    tier: str | None = None


class ResearchReportResponse(BaseModel):
    report: str
    synthesis: str
    speculation: str
    sources: list[SourceResponse]
    requestId: str
    confidenceScore: int
    metadata: dict[str, Any]


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    apiKeys: dict[str, bool]
