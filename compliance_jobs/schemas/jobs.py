"""Request and response models for the job trigger API."""

from typing import List, Optional

from pydantic import BaseModel, Field


class DeleteManualAnswersRequest(BaseModel):
    organization_id: str = Field(..., min_length=1, description="Tenant whose manual answers are deleted")
    manual_answer_ids: Optional[List[str]] = Field(
        default=None,
        description="Specific manual answers to delete; all of the organization's when omitted",
    )


class DeleteDocumentVectorsRequest(BaseModel):
    organization_id: str = Field(..., min_length=1)


class RunConnectionChecksRequest(BaseModel):
    organization_id: str = Field(..., min_length=1)
    provider_slug: str = Field(..., min_length=1, description="Integration provider, e.g. aws or github")
    task_id: Optional[str] = Field(default=None, description="Only run the checks linked to this task")
    check_ids: List[str] = Field(default_factory=list)


class JobStartedResponse(BaseModel):
    workflow_id: str = Field(..., description="Temporal workflow id of the started job")
    workflow: str = Field(..., description="Workflow type name")
    status: str = "started"


class JobProgressResponse(BaseModel):
    workflow_id: str
    status: str = Field(..., description="pending | running | completed | failed")
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_batch: int = 0
    total_batches: int = 0


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health check status")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
