from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ProjectId = Union[int, str]


class OrderStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class ProjectState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    LOCATING = "locating"
    MERGING = "merging"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class RenderFile(BaseModel):
    filename: Optional[str] = None


class RenderManifest(BaseModel):
    url: Optional[str] = None
    files: List[RenderFile] = Field(default_factory=list)

    def filenames(self) -> List[str]:
        return [item.filename for item in self.files if item.filename]


class OrderProjectInfo(BaseModel):
    id: Optional[ProjectId] = None
    family_id: Optional[int] = None


class ProjectOrderInfo(BaseModel):
    reference: Optional[str] = None
    projects: List[OrderProjectInfo] = Field(default_factory=list)


class ProjectPayload(BaseModel):
    id: Optional[ProjectId] = None
    render: Optional[RenderManifest] = None
    order: Optional[ProjectOrderInfo] = None


class WebhookPayload(BaseModel):
    order: Optional[Union[int, str, Dict[str, Any]]] = None
    projects: List[ProjectPayload] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    kind: str
    message: str


class ProjectOutcome(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project_id: Optional[ProjectId] = None
    project_index: int
    status: str
    path: Optional[str] = None
    page_count: Optional[int] = None
    order_value: Optional[float] = None
    is_magazine: bool = False
    error: Optional[ErrorDetail] = None


class WebhookResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    order_id: str
    status: OrderStatus
    results: List[ProjectOutcome] = Field(default_factory=list)
    errors: List[ProjectOutcome] = Field(default_factory=list)
