import base64
import io
import struct

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from icocodec.main import app
from icocodec.services.icon import IconContainer, RawIconImage
from icocodec.services.pack_ico import IconEncoding, pack_ico


def create_png(size: int, color=(0, 128, 255, 255)) -> bytes:
    image = Image.new("RGBA", (size, size), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def test_pack_endpoint_returns_ico(client):
    response = client.post(
        "/api/v1/icons/pack",
        data={"encoding": IconEncoding.BOTH.value},
        files=[
            ("files", ("logo.png", create_png(256), "image/png")),
            ("files", ("small.png", create_png(16), "image/png")),
        ],
    )

    assert response.status_code == 200
    assert response.headers.get("content-type") == "application/octet-stream"
    assert response.headers.get("content-disposition", "").endswith("logo.ico\"")

    reserved, icon_type, count = struct.unpack("<HHH", response.content[:6])
    assert (reserved, icon_type, count) == (0, 1, 4)

    container = IconContainer.from_bytes(response.content)
    assert [(image.width, image.format) for image in container] == [
        (256, "png"),
        (256, "bmp"),
        (16, "png"),
        (16, "bmp"),
    ]


def test_pack_endpoint_defaults_to_png(client):
    response = client.post(
        "/api/v1/icons/pack",
        files=[("files", ("only.png", create_png(32), "image/png"))],
    )

    assert response.status_code == 200
    assert [image.format for image in IconContainer.from_bytes(response.content)] == ["png"]


def test_pack_endpoint_rejects_large_dimensions(client):
    response = client.post(
        "/api/v1/icons/pack",
        files=[("files", ("huge.png", create_png(512), "image/png"))],
    )

    assert response.status_code == 400
    assert "256x256" in response.json()["detail"]


def test_pack_endpoint_rejects_oversized_upload(client, monkeypatch):
    monkeypatch.setattr("icocodec.core.deps.settings.max_upload_size_bytes", 10)

    response = client.post(
        "/api/v1/icons/pack",
        files=[("files", ("big.png", create_png(16), "image/png"))],
    )

    assert response.status_code == 400
    assert "maximum size" in response.json()["detail"]


def test_inspect_endpoint_reports_directory(client):
    ico_bytes = pack_ico([create_png(48), create_png(16)], IconEncoding.BOTH)

    response = client.post(
        "/api/v1/icons/inspect",
        files={"file": ("app.ico", ico_bytes, "image/x-icon")},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["count"] == 4

    expected_offset = 6 + 16 * 4
    for index, entry in enumerate(payload["entries"]):
        assert entry["index"] == index
        assert entry["offset"] == expected_offset
        expected_offset += entry["size"]
    assert expected_offset == len(ico_bytes)
    assert [entry["format"] for entry in payload["entries"]] == ["png", "bmp", "png", "bmp"]
    assert [entry["width"] for entry in payload["entries"]] == [48, 48, 16, 16]


def test_inspect_endpoint_rejects_truncated_file(client):
    ico_bytes = pack_ico([create_png(16)])

    response = client.post(
        "/api/v1/icons/inspect",
        files={"file": ("app.ico", ico_bytes[:-5], "image/x-icon")},
    )

    assert response.status_code == 400
    assert "past end of data" in response.json()["detail"]


def test_frames_endpoint_returns_data_uris(client):
    ico_bytes = pack_ico([create_png(32)], IconEncoding.BOTH)

    response = client.post(
        "/api/v1/icons/frames",
        files={"file": ("app.ico", ico_bytes, "image/x-icon")},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["count"] == 2
    for frame in payload["frames"]:
        assert frame["width"] == 32
        assert frame["image_base64"].startswith("data:image/png;base64,")


def test_repack_endpoint_doubles_frames(client):
    ico_bytes = pack_ico([create_png(16), create_png(24)])

    response = client.post(
        "/api/v1/icons/repack",
        files={"file": ("app.ico", ico_bytes, "image/x-icon")},
    )

    assert response.status_code == 200
    container = IconContainer.from_bytes(response.content)
    assert [(image.width, image.format) for image in container] == [
        (16, "png"),
        (16, "bmp"),
        (24, "png"),
        (24, "bmp"),
    ]


def test_api_key_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr("icocodec.core.deps.settings.require_api_key", "secret")
    ico_bytes = pack_ico([create_png(16)])

    rejected = client.post(
        "/api/v1/icons/inspect",
        files={"file": ("app.ico", ico_bytes, "image/x-icon")},
    )
    accepted = client.post(
        "/api/v1/icons/inspect",
        headers={"X-API-Key": "secret"},
        files={"file": ("app.ico", ico_bytes, "image/x-icon")},
    )

    assert rejected.status_code == 401
    assert rejected.headers.get("WWW-Authenticate") == "ApiKey"
    assert accepted.status_code == 200


def test_ping(client):
    response = client.get("/api/v1/ping")

    assert response.json() == {"message": "pong"}


def test_frames_endpoint_decodes_24bpp_bitmap_entry(client):
    width = height = 16
    pixels = bytes([0, 0, 255]) * (width * height)
    mask = bytes(4 * height)
    header = struct.pack("<IiiHHIIiiII", 40, width, height * 2, 1, 24, 0, 0, 0, 0, 0, 0)
    ico_bytes = IconContainer([RawIconImage(width, height, 24, header + pixels + mask)]).to_bytes()

    response = client.post(
        "/api/v1/icons/frames",
        files={"file": ("classic.ico", ico_bytes, "image/x-icon")},
    )

    assert response.status_code == 200
    frame = response.json()["frames"][0]
    encoded = frame["image_base64"].split(",", 1)[1]
    with Image.open(io.BytesIO(base64.b64decode(encoded))) as image:
        assert image.size == (16, 16)
        assert image.convert("RGBA").getpixel((7, 7)) == (255, 0, 0, 255)


def test_pack_endpoint_rejects_truncated_upload(client):
    response = client.post(
        "/api/v1/icons/pack",
        files=[("files", ("cut.png", create_png(64)[:-40], "image/png"))],
    )

    assert response.status_code == 400
    assert "not a valid image" in response.json()["detail"]
