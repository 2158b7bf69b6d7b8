from __future__ import annotations

import io
import os
import struct
from dataclasses import dataclass, field
from logging import getLogger
from typing import BinaryIO, Iterable, Iterator, List, Protocol, Union, runtime_checkable

logger = getLogger(__name__)

HEADER_FORMAT = "<HHH"
DIRECTORY_ENTRY_FORMAT = "<BBBBHHII"
DIRECTORY_PREFIX_FORMAT = "<BBBBHH"
PLACEHOLDER_FORMAT = "<II"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
DIRECTORY_ENTRY_SIZE = struct.calcsize(DIRECTORY_ENTRY_FORMAT)
ICON_TYPE = 1
MAX_ENTRIES = 0xFFFF
MAX_BITS_PER_PIXEL = 0xFFFF
MAX_PAYLOAD_SIZE = 0xFFFFFFFF
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

PathOrStream = Union[str, os.PathLike, BinaryIO]


class IconError(ValueError):
    """Base class for icon codec errors."""


class ArgumentError(IconError):
    """Raised when a sink or source cannot be used."""


class FormatError(IconError):
    """Raised when icon bytes are structurally invalid."""


@runtime_checkable
class IconImage(Protocol):
    """Capabilities every container entry exposes."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def bits_per_pixel(self) -> int: ...

    def get_data(self) -> bytes: ...


@dataclass(frozen=True)
class RawIconImage:
    """An entry parsed from ICO bytes, payload kept as-is."""

    width: int
    height: int
    bits_per_pixel: int
    payload: bytes = field(repr=False)
    color_count: int = 0
    planes: int = 1
    data_offset: int = 0

    @property
    def format(self) -> str:
        return "png" if self.payload.startswith(PNG_SIGNATURE) else "bmp"

    def get_data(self) -> bytes:
        return self.payload


def _is_path(target: object) -> bool:
    return isinstance(target, (str, os.PathLike))


class IconContainer:
    """Ordered collection of icon entries with ICO serialization.

    Entry order is preserved on disk and when reading back. The container must
    not be mutated while ``write`` is running.
    """

    def __init__(self, images: Iterable[IconImage] | None = None):
        self.images: List[IconImage] = list(images or [])

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[IconImage]:
        return iter(self.images)

    def __getitem__(self, index: int) -> IconImage:
        return self.images[index]

    def add(self, image: IconImage) -> None:
        self.images.append(image)

    def remove(self, image: IconImage) -> None:
        self.images.remove(image)

    def save(self, target: PathOrStream) -> None:
        """Write the icon to a file path or a seekable binary stream.

        Streams passed in are left open; files opened here are always closed.
        """

        if _is_path(target):
            with open(target, "wb") as stream:
                self.write(stream)
            return
        self.write(target)

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.write(buffer)
        return buffer.getvalue()

    def write(self, stream: BinaryIO | None) -> None:
        """Serialize all entries using placeholder directory records.

        Sizes and offsets are patched in once each payload is produced, so
        ``get_data`` is called exactly once per entry. Offsets are relative to
        the stream position at the start of the call.
        """

        if stream is None:
            raise ArgumentError("Stream must not be None")
        seekable = getattr(stream, "seekable", None)
        if seekable is None or not seekable():
            raise ArgumentError("Stream must support seeking")
        if len(self.images) > MAX_ENTRIES:
            raise ArgumentError(
                f"An icon holds at most {MAX_ENTRIES} images, got {len(self.images)}"
            )
        for index, image in enumerate(self.images):
            if not 0 <= image.bits_per_pixel <= MAX_BITS_PER_PIXEL:
                raise ArgumentError(
                    f"Image {index} has {image.bits_per_pixel} bits per pixel; "
                    f"the field holds 0..{MAX_BITS_PER_PIXEL}"
                )

        start = stream.tell()
        stream.write(struct.pack(HEADER_FORMAT, 0, ICON_TYPE, len(self.images)))

        pending = []
        for image in self.images:
            # Palette count is always 0, planes always 1: payloads carry no palette.
            stream.write(
                struct.pack(
                    DIRECTORY_PREFIX_FORMAT,
                    image.width % 256,
                    image.height % 256,
                    0,
                    0,
                    1,
                    image.bits_per_pixel,
                )
            )
            pending.append((stream.tell(), image))
            stream.write(struct.pack(PLACEHOLDER_FORMAT, 0, 0))

        for placeholder, image in pending:
            data = image.get_data()
            if len(data) > MAX_PAYLOAD_SIZE:
                raise ArgumentError("Image payload exceeds 4 GiB")
            position = stream.tell()

            stream.seek(placeholder)
            stream.write(struct.pack(PLACEHOLDER_FORMAT, len(data), position - start))

            stream.seek(position)
            stream.write(data)

        logger.debug("Wrote icon with %d images", len(self.images))

    @classmethod
    def load(cls, source: PathOrStream) -> "IconContainer":
        """Read an icon from a file path or a binary stream."""

        if _is_path(source):
            with open(source, "rb") as stream:
                return cls.read(stream)
        return cls.read(source)

    @classmethod
    def from_bytes(cls, data: bytes) -> "IconContainer":
        if data is None:
            raise ArgumentError("Icon data must not be None")
        return cls.read(io.BytesIO(data))

    @classmethod
    def read(cls, stream: BinaryIO | None) -> "IconContainer":
        """Parse ICO bytes from the current stream position.

        Entries are returned as :class:`RawIconImage` in directory order. Any
        structural inconsistency raises :class:`FormatError`.
        """

        if stream is None:
            raise ArgumentError("Stream must not be None")

        data = stream.read()
        if len(data) < HEADER_SIZE:
            raise FormatError("Icon data is too short for the file header")

        reserved, icon_type, count = struct.unpack_from(HEADER_FORMAT, data, 0)
        if reserved != 0:
            raise FormatError(f"Invalid reserved header field: {reserved}")
        if icon_type != ICON_TYPE:
            raise FormatError(f"Unsupported image type {icon_type}, expected {ICON_TYPE}")

        directory_end = HEADER_SIZE + DIRECTORY_ENTRY_SIZE * count
        if len(data) < directory_end:
            raise FormatError(
                f"Icon declares {count} images but the directory is truncated"
            )

        images = []
        for index in range(count):
            (
                width,
                height,
                color_count,
                _reserved,
                planes,
                bits_per_pixel,
                size,
                offset,
            ) = struct.unpack_from(
                DIRECTORY_ENTRY_FORMAT, data, HEADER_SIZE + DIRECTORY_ENTRY_SIZE * index
            )
            if offset + size > len(data):
                raise FormatError(
                    f"Image {index} spans bytes {offset}..{offset + size} "
                    f"past end of data ({len(data)} bytes)"
                )
            images.append(
                RawIconImage(
                    width=width or 256,
                    height=height or 256,
                    bits_per_pixel=bits_per_pixel,
                    payload=data[offset : offset + size],
                    color_count=color_count,
                    planes=planes,
                    data_offset=offset,
                )
            )

        logger.debug("Read icon with %d images", count)
        return cls(images)

    @classmethod
    def from_frames(cls, frames) -> "IconContainer":
        """Build a container with a PNG and a BMP entry for every decoded frame."""

        if frames is None:
            raise ArgumentError("Frames must not be None")

        from icocodec.services.image_sources import BmpIconImage, PngIconImage

        container = cls()
        for frame in frames:
            container.add(PngIconImage(frame))
            container.add(BmpIconImage(frame))
        return container
