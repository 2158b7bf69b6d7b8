from __future__ import annotations

import base64
import io
from enum import Enum
from typing import List, Sequence

from PIL import Image, UnidentifiedImageError

from icocodec.core.config import settings
from icocodec.services.icon import IconContainer, IconImage
from icocodec.services.image_sources import (
    BmpIconImage,
    PngIconImage,
    frames_from_container,
)


class IconEncoding(str, Enum):
    PNG = "png"
    BMP = "bmp"
    BOTH = "both"

    def entries_for(self, frame: Image.Image) -> List[IconImage]:
        if self is IconEncoding.PNG:
            return [PngIconImage(frame)]
        if self is IconEncoding.BMP:
            return [BmpIconImage(frame)]
        return [PngIconImage(frame), BmpIconImage(frame)]


def _load_frame(content: bytes, index: int) -> Image.Image:
    """Load an uploaded image as RGBA and check it fits in an icon entry."""

    try:
        with Image.open(io.BytesIO(content)) as image:
            detected_format = image.format
            frame = image.convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Image {index} is not a valid image") from exc

    if detected_format not in settings.allowed_image_formats:
        allowed = ", ".join(settings.allowed_image_formats)
        raise ValueError(f"Image {index} has unsupported format. Allowed: {allowed}")

    limit = settings.max_icon_dimension
    if frame.width > limit or frame.height > limit:
        raise ValueError(
            f"Image {index} is {frame.width}x{frame.height}; icon images must be at most {limit}x{limit} pixels"
        )
    return frame


def pack_ico(images: Sequence[bytes], encoding: IconEncoding = IconEncoding.PNG) -> bytes:
    """Validate uploaded images and pack them, in order, into an ICO byte stream."""

    if not images:
        raise ValueError("At least one image is required")
    if len(images) > settings.max_upload_files:
        raise ValueError(f"At most {settings.max_upload_files} images can be packed")

    container = IconContainer()
    for index, content in enumerate(images):
        for entry in encoding.entries_for(_load_frame(content, index)):
            container.add(entry)
    return container.to_bytes()


def extract_frames(container: IconContainer) -> List[bytes]:
    """Decode every entry of a parsed icon and re-encode it as PNG."""

    frames = frames_from_container(container)
    return [PngIconImage(frame).get_data() for frame in frames]


def repack_ico(data: bytes) -> bytes:
    """Rebuild an ICO file with a PNG and a BMP entry for each decoded frame."""

    frames = frames_from_container(IconContainer.from_bytes(data))
    return IconContainer.from_frames(frames).to_bytes()


def encode_image_base64(image_bytes: bytes) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:image/png;base64,{encoded}"
