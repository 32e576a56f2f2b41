"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from scriptboard.models import AssetType


class Selection(BaseModel):
    start: int
    end: int

    def as_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)


class CreateSession(BaseModel):
    script: str = ""


class ChatBody(BaseModel):
    message: str
    selection: Selection | None = None


class UpdateScript(BaseModel):
    text: str
    selection: Selection | None = None


class ResolveAsset(BaseModel):
    name: str
    type: AssetType
