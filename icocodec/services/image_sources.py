from __future__ import annotations

import io
import struct
from typing import List

import numpy as np
from PIL import BmpImagePlugin, Image, UnidentifiedImageError

from icocodec.services.icon import PNG_SIGNATURE, FormatError, IconContainer

BITMAPINFOHEADER_FORMAT = "<IiiHHIIiiII"
BITMAPINFOHEADER_SIZE = struct.calcsize(BITMAPINFOHEADER_FORMAT)
BI_RGB = 0


class _FrameIconImage:
    bits_per_pixel = 32

    def __init__(self, frame: Image.Image):
        self.frame = frame

    @property
    def width(self) -> int:
        return self.frame.width

    @property
    def height(self) -> int:
        return self.frame.height

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.width}x{self.height})"


class PngIconImage(_FrameIconImage):
    """Icon entry stored as an embedded PNG."""

    def get_data(self) -> bytes:
        buffer = io.BytesIO()
        self.frame.convert("RGBA").save(buffer, format="PNG")
        return buffer.getvalue()


class BmpIconImage(_FrameIconImage):
    """Icon entry stored as a 32-bit DIB with an AND mask."""

    def get_data(self) -> bytes:
        return encode_dib(self.frame)


def encode_dib(frame: Image.Image) -> bytes:
    """Encode a frame as BITMAPINFOHEADER + bottom-up BGRA rows + AND mask.

    The header height is doubled to account for the mask, which marks fully
    transparent pixels and pads every row to 32 bits.
    """

    rgba = np.asarray(frame.convert("RGBA"), dtype=np.uint8)
    height, width = rgba.shape[:2]

    bottom_up = rgba[::-1]
    pixels = np.ascontiguousarray(bottom_up[:, :, [2, 1, 0, 3]]).tobytes()

    packed = np.packbits(bottom_up[:, :, 3] == 0, axis=1)
    mask_row_bytes = ((width + 31) // 32) * 4
    mask = np.zeros((height, mask_row_bytes), dtype=np.uint8)
    mask[:, : packed.shape[1]] = packed

    header = struct.pack(
        BITMAPINFOHEADER_FORMAT,
        BITMAPINFOHEADER_SIZE,
        width,
        height * 2,
        1,
        32,
        BI_RGB,
        width * height * 4,
        0,
        0,
        0,
        0,
    )
    return header + pixels + mask.tobytes()


def _mask_alpha(data: bytes, offset: int, width: int, height: int, bottom_up: bool) -> np.ndarray:
    """Alpha from the 1-bpp AND mask; a missing mask means fully opaque."""

    row_bytes = ((width + 31) // 32) * 4
    if len(data) < offset + row_bytes * height:
        return np.full((height, width), 255, dtype=np.uint8)

    rows = np.frombuffer(data, dtype=np.uint8, count=row_bytes * height, offset=offset)
    bits = np.unpackbits(rows.reshape(height, row_bytes), axis=1)[:, :width]
    if bottom_up:
        bits = bits[::-1]
    return np.where(bits == 1, 0, 255).astype(np.uint8)


def decode_dib(data: bytes) -> Image.Image:
    """Decode an icon DIB of any depth Pillow's BMP plugin supports.

    The header height counts the AND mask too, so it is halved before Pillow
    reads the colour bitmap. 32-bpp entries carry their own alpha unless it is
    all zero; every other depth takes alpha from the AND mask.
    """

    if len(data) < BITMAPINFOHEADER_SIZE:
        raise FormatError("Bitmap payload is too short for its header")

    _header_size, width, doubled_height, _planes, bits = struct.unpack_from("<IiiHH", data, 0)
    height = abs(doubled_height) // 2
    if width <= 0 or height <= 0:
        raise FormatError(f"Invalid bitmap dimensions {width}x{doubled_height}")
    bottom_up = doubled_height > 0

    patched = bytearray(data)
    struct.pack_into("<i", patched, 8, height if bottom_up else -height)
    try:
        with BmpImagePlugin.DibImageFile(io.BytesIO(bytes(patched))) as bitmap:
            pixel_offset = bitmap.tile[0][2]
            rgb = np.asarray(bitmap.convert("RGB"))
    except (SyntaxError, OSError, ValueError, struct.error) as exc:
        raise FormatError(f"Unsupported bitmap payload: {exc}") from exc

    stride = ((width * bits + 31) // 32) * 4
    alpha = None
    if bits == 32:
        pixels = np.frombuffer(data, dtype=np.uint8, count=width * height * 4, offset=pixel_offset)
        alpha = pixels.reshape(height, width, 4)[:, :, 3]
        if bottom_up:
            alpha = alpha[::-1]
        if not alpha.any():
            alpha = None
    if alpha is None:
        alpha = _mask_alpha(data, pixel_offset + stride * height, width, height, bottom_up)

    return Image.fromarray(np.ascontiguousarray(np.dstack([rgb, alpha])))


def decode_payload(data: bytes) -> Image.Image:
    """Decode a PNG or DIB icon payload into an RGBA image."""

    if data.startswith(PNG_SIGNATURE):
        try:
            with Image.open(io.BytesIO(data)) as image:
                return image.convert("RGBA")
        except (UnidentifiedImageError, OSError) as exc:
            raise FormatError("Embedded PNG payload is corrupt") from exc
    return decode_dib(data)


def frames_from_container(container: IconContainer) -> List[Image.Image]:
    return [decode_payload(image.get_data()) for image in container]
