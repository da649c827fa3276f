import base64
import struct
import zlib

import pytest

from participium.errors import BadRequest, ValidationReason
from participium.photo_utils import decode_data_uri, encode_data_uri, validate_photos
from participium.storage import LocalPhotoStorage

from factories import data_uri, image_bytes


def test_accepts_one_to_three_supported_images():
    photos = validate_photos([data_uri("PNG"), data_uri("JPEG"), data_uri("WEBP")])
    assert [p.mime_type for p in photos] == ["image/png", "image/jpeg", "image/webp"]
    assert [p.extension for p in photos] == ["png", "jpg", "webp"]


@pytest.mark.parametrize("photos", [[], None, "data:image/png;base64,AAAA", [data_uri()] * 4])
def test_photo_count_enforced(photos):
    with pytest.raises(BadRequest) as exc:
        validate_photos(photos)
    assert exc.value.message == "Photos must contain between 1 and 3 images"
    assert exc.value.reason == ValidationReason.PHOTO_COUNT


def test_gif_is_an_unsupported_format():
    with pytest.raises(BadRequest) as exc:
        validate_photos([data_uri("PNG"), data_uri("GIF")])
    assert exc.value.reason == ValidationReason.PHOTO_FORMAT
    assert exc.value.message.startswith("Photo #2 has an unsupported format")


def test_declared_type_must_match_real_image():
    # PNG label over bytes that are not an image at all
    fake = "data:image/png;base64," + base64.b64encode(b"definitely not an image").decode()
    with pytest.raises(BadRequest) as exc:
        decode_data_uri(fake, index=1)
    assert exc.value.message == "Photo #1 is not a valid image data URI"
    assert exc.value.reason == ValidationReason.PHOTO_INVALID


@pytest.mark.parametrize("value", ["not a data uri", "data:image/png;base64,@@@", 42])
def test_malformed_data_uri(value):
    with pytest.raises(BadRequest) as exc:
        decode_data_uri(value, index=3)
    assert exc.value.reason == ValidationReason.PHOTO_INVALID
    assert "Photo #3" in exc.value.message


def test_oversized_photo_rejected():
    with pytest.raises(BadRequest) as exc:
        decode_data_uri(data_uri("PNG"), max_bytes=10)
    assert exc.value.reason == ValidationReason.PHOTO_INVALID


def test_encode_detects_format_from_bytes():
    uri = encode_data_uri(image_bytes("JPEG"))
    assert uri.startswith("data:image/jpeg;base64,")
    assert decode_data_uri(uri).mime_type == "image/jpeg"
    assert encode_data_uri(image_bytes("PNG")).startswith("data:image/png;base64,")


def test_storage_returns_stable_url(tmp_path):
    storage = LocalPhotoStorage(root=str(tmp_path))
    photo = decode_data_uri(data_uri("PNG"))
    url = storage.save(7, photo)
    assert url.startswith("/storage/reports/7/") and url.endswith(".png")
    assert storage.path_for(url).read_bytes() == photo.data
    assert storage.delete(url) is True
    assert not storage.path_for(url).exists()


def _png_header(width: int, height: int) -> bytes:
    # Signature and IHDR only: enough for Pillow to read the claimed size.
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    chunk = b"IHDR" + ihdr
    return (
        b"\x89PNG\r\n\x1a\n"
        + struct.pack(">I", len(ihdr))
        + chunk
        + struct.pack(">I", zlib.crc32(chunk) & 0xFFFFFFFF)
    )


def test_oversized_dimensions_are_an_invalid_photo():
    uri = "data:image/png;base64," + base64.b64encode(_png_header(30000, 30000)).decode()
    with pytest.raises(BadRequest) as exc:
        validate_photos([uri])
    assert exc.value.reason == ValidationReason.PHOTO_INVALID
    assert exc.value.message == "Photo #1 is not a valid image data URI"
