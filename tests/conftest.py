import io
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PIL import Image

from photomark.text_path import ensure_gui_app


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    return ensure_gui_app()


@pytest.fixture
def make_image(tmp_path):
    """在 tmp_path 下生成一张纯色图片，返回路径"""
    def _make(name, size=(200, 100), color=(40, 80, 120), fmt=None, folder=None):
        directory = tmp_path / folder if folder else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        Image.new("RGB", size, color).save(path, fmt)
        return path
    return _make


def png_bytes(size=(100, 100), color=(255, 0, 0, 255)):
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, "PNG")
    return buffer.getvalue()


def alpha_bbox(img):
    return img.getchannel("A").getbbox()


def bbox_center(bbox):
    left, top, right, bottom = bbox
    return ((left + right) / 2, (top + bottom) / 2)
