from typing import List
from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    message: str


class UploadResponse(BaseModel):
    message: str
    base_name: str = Field(..., alias="baseName")
    files: List[str]
    # Target names whose staged file was gone at rename time
    missing: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class HealthResponse(BaseModel):
    status: str
