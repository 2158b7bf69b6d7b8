from __future__ import annotations

from fastapi import Header, HTTPException, UploadFile, status

from icocodec.core.config import settings


async def verify_api_key(x_api_key: str | None = Header(default=None)) -> None:
    """Authenticate requests using a static API key when configured."""

    if settings.require_api_key is None:
        return

    if x_api_key != settings.require_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key provided.",
            headers={"WWW-Authenticate": "ApiKey"},
        )


async def read_upload(upload: UploadFile) -> bytes:
    """Read an uploaded file, enforcing the configured size limit."""

    content = await upload.read()
    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Uploaded file '{upload.filename}' exceeds maximum size limit",
        )
    return content
