"""Error payloads returned by the backend."""
from __future__ import annotations

from pydantic import BaseModel


class APIErrorBody(BaseModel):
    detail: str


class ValidationErrorDetail(BaseModel):
    loc: list[str | int]
    msg: str
    type: str


class ValidationErrorBody(BaseModel):
    detail: list[ValidationErrorDetail]
