from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, List

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from starlette import status

from icocodec.core.deps import read_upload
from icocodec.models.responses import (
    IconEntryResponse,
    IconFrameResponse,
    IconFramesResponse,
    IconInspectResponse,
)
from icocodec.services.icon import IconContainer
from icocodec.services.pack_ico import (
    IconEncoding,
    encode_image_base64,
    extract_frames,
    pack_ico,
    repack_ico,
)

router = APIRouter(prefix="/icons", tags=["icons"])


def _ico_response(content: bytes, name: str) -> Response:
    headers = {"Content-Disposition": f"attachment; filename=\"{name}.ico\""}
    return Response(content=content, media_type="application/octet-stream", headers=headers)


@router.post("/pack", response_class=Response)
async def pack_icon(
    files: Annotated[List[UploadFile], File(..., description="Images to pack, in entry order")],
    encoding: Annotated[
        IconEncoding, Form(description="Payload encoding for every entry")
    ] = IconEncoding.PNG,
) -> Response:
    contents = [await read_upload(upload) for upload in files]

    try:
        ico_bytes = await asyncio.to_thread(pack_ico, contents, encoding)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    name = Path(files[0].filename or "icon").stem
    return _ico_response(ico_bytes, name)


@router.post("/inspect", response_model=IconInspectResponse)
async def inspect_icon(
    file: Annotated[UploadFile, File(..., description="ICO file")],
) -> IconInspectResponse:
    content = await read_upload(file)
    try:
        container = await asyncio.to_thread(IconContainer.from_bytes, content)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    entries = [
        IconEntryResponse(
            index=index,
            width=image.width,
            height=image.height,
            bits_per_pixel=image.bits_per_pixel,
            size=len(image.payload),
            offset=image.data_offset,
            format=image.format,
        )
        for index, image in enumerate(container)
    ]
    return IconInspectResponse(count=len(entries), entries=entries)


@router.post("/frames", response_model=IconFramesResponse)
async def icon_frames(
    file: Annotated[UploadFile, File(..., description="ICO file")],
) -> IconFramesResponse:
    content = await read_upload(file)
    try:
        container = await asyncio.to_thread(IconContainer.from_bytes, content)
        frames = await asyncio.to_thread(extract_frames, container)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return IconFramesResponse(
        count=len(frames),
        frames=[
            IconFrameResponse(
                index=index,
                width=image.width,
                height=image.height,
                image_base64=encode_image_base64(frame),
            )
            for index, (image, frame) in enumerate(zip(container, frames))
        ],
    )


@router.post("/repack", response_class=Response)
async def repack_icon(
    file: Annotated[UploadFile, File(..., description="ICO file")],
) -> Response:
    content = await read_upload(file)
    try:
        ico_bytes = await asyncio.to_thread(repack_ico, content)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return _ico_response(ico_bytes, Path(file.filename or "icon").stem)
