"""Request/Response schemas"""
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Verdict(str, Enum):
    CANCER = "Cancer"
    NON_CANCER = "NonCancer"


class PredictionRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Unique prediction identifier")
    result: Verdict
    suggestion: str
    created_at: str = Field(..., alias="createdAt", description="ISO-8601 UTC timestamp")

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class PredictResponse(BaseModel):
    status: str = "success"
    message: str = "Model is predicted successfully"
    data: PredictionRecord


class HistoryItem(BaseModel):
    id: str
    history: PredictionRecord


class HistoryResponse(BaseModel):
    status: str = "success"
    data: List[HistoryItem] = Field(default_factory=list)


class FailResponse(BaseModel):
    status: str = "fail"
    message: str


class HealthResponse(BaseModel):
    status: str
    model_url: str
    store: str
    error: str | None = None

    model_config = ConfigDict(protected_namespaces=())
