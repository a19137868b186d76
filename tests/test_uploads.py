import io
import os

import pytest
from fastapi.testclient import TestClient

import errors
from main import create_app
from uploads import detect_image_type, read_upload, sanitize_filename, save_image

from conftest import API, signup

PNG = bytes.fromhex("89504e470d0a1a0a") + b"\x00" * 32
JPEG = bytes.fromhex("ffd8ffe000104a46") + b"\x00" * 32


def test_upload_image(client, settings, owner):
    res = client.post(
        f"{API}/uploads/images",
        files={"file": ("My Photo.PNG", PNG, "image/png")},
        headers=owner["headers"],
    )

    assert res.status_code == 201
    data = res.json()["data"]
    assert data["type"] == "png"
    assert data["url"] == f"/uploads/images/{data['filename']}"
    assert data["filename"].endswith("-my_photo.png")
    assert os.path.exists(os.path.join(settings.upload_dir, "images", data["filename"]))

    served = client.get(data["url"])
    assert served.status_code == 200
    assert served.content == PNG


def test_upload_rejects_non_images(client, owner):
    res = client.post(
        f"{API}/uploads/images",
        files={"file": ("evil.png", b"<?php echo 1; ?>", "image/png")},
        headers=owner["headers"],
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "UNSUPPORTED_FILE_TYPE"


def test_upload_requires_login(client):
    res = client.post(f"{API}/uploads/images", files={"file": ("a.png", PNG, "image/png")})
    assert res.status_code == 401


def test_oversized_image(tmp_path):
    with pytest.raises(errors.PayloadTooLarge):
        save_image(PNG, "a.png", str(tmp_path), max_size_mb=0)
    assert not (tmp_path / "images").exists()


@pytest.mark.parametrize("content,expected", [
    (PNG, "png"),
    (JPEG, "jpg"),
    (b"GIF89a" + b"\x00" * 8, "gif"),
    (b"BM" + b"\x00" * 8, "bmp"),
    (b"%PDF-1.7", None),
    (b"", None),
])
def test_detect_image_type(content, expected):
    assert detect_image_type(content) == expected


@pytest.mark.parametrize("name,expected", [
    ("photo.jpg", "photo.jpg"),
    ("My Photo.JPG", "my_photo.jpg"),
    ("../../etc/passwd", "____etc_passwd"),
    ("사진.png", "__.png"),
    ("", "upload"),
    (None, "upload"),
])
def test_sanitize_filename(name, expected):
    assert sanitize_filename(name) == expected


class CountingStream(io.BytesIO):
    def __init__(self, content):
        super().__init__(content)
        self.requested = []

    def read(self, size=-1):
        self.requested.append(size)
        return super().read(size)


def test_read_upload_stops_past_the_limit():
    stream = CountingStream(b"x" * (1024 * 1024 + 50))
    with pytest.raises(errors.PayloadTooLarge):
        read_upload(stream, max_size_mb=1)
    assert stream.requested == [1024 * 1024 + 1]
    assert stream.tell() == 1024 * 1024 + 1


def test_read_upload_within_the_limit():
    assert read_upload(io.BytesIO(PNG), max_size_mb=1) == PNG


def test_oversized_upload_is_rejected(settings, mongo):
    app = create_app(settings.model_copy(update={"max_upload_mb": 0}), client=mongo)
    with TestClient(app) as client:
        user = signup(client)
        res = client.post(
            f"{API}/uploads/images",
            files={"file": ("a.png", PNG, "image/png")},
            headers=user["headers"],
        )
    assert res.status_code == 413
    assert res.json()["error"]["code"] == "FILE_TOO_LARGE"
    assert not os.path.exists(os.path.join(settings.upload_dir, "images"))
