from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class IconEntryResponse(BaseModel):
    index: int = Field(..., description="Position of the entry in the icon directory")
    width: int
    height: int
    bits_per_pixel: int
    size: int = Field(..., description="Payload length in bytes")
    offset: int = Field(..., description="Absolute payload offset from the start of the file")
    format: str = Field(..., description="Payload encoding, either png or bmp")


class IconInspectResponse(BaseModel):
    count: int
    entries: List[IconEntryResponse]


class IconFrameResponse(BaseModel):
    index: int
    width: int
    height: int
    image_base64: str = Field(..., description="Decoded entry re-encoded as a base64 PNG data URI")


class IconFramesResponse(BaseModel):
    count: int
    frames: List[IconFrameResponse]


class ProblemDetails(BaseModel):
    type: str = "about:blank"
    title: str
    status: int
    detail: str | None = None
    instance: str
    request_id: str
