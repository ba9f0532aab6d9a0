import io
from typing import Callable

import pytest
from PIL import Image


def make_image_bytes(color=(255, 0, 0), size=(40, 30), fmt="PNG", mode="RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def image_bytes() -> Callable[..., bytes]:
    """Factory producing small encoded images."""
    return make_image_bytes


@pytest.fixture
def image_file(tmp_path):
    def _write(name="photo.png", color=(0, 128, 255), size=(40, 30)):
        path = tmp_path / name
        Image.new("RGB", size, color).save(path)
        return path

    return _write
