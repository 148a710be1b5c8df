# photomark/image_io.py
import io
import os
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from photomark.config import SUPPORTED_EXTS
from photomark.errors import DecodeFailure, PermissionFailure


def is_image_file(path):
    _, ext = os.path.splitext(str(path).lower())
    return ext in SUPPORTED_EXTS


class FileSource:
    """
    待处理的原图

    批量导出只通过 read_bytes() 读取内容，通过 parent 判断输出目录是否与原图目录相同。
    """

    def __init__(self, path):
        self.path = Path(path)

    @property
    def name(self):
        return self.path.name

    @property
    def stem(self):
        return self.path.stem

    @property
    def parent(self):
        return self.path.parent

    def read_bytes(self):
        try:
            return self.path.read_bytes()
        except PermissionError as e:
            raise PermissionFailure(f"没有读取权限: {self.path}") from e
        except OSError as e:
            raise DecodeFailure(f"无法读取文件 {self.path}: {e}") from e

    def __repr__(self):
        return f"FileSource({str(self.path)!r})"


def collect_sources(paths, recursive=True):
    """把文件和文件夹展开成 FileSource 列表，保持输入顺序并去重"""
    seen = set()
    sources = []

    def add(p):
        key = os.path.abspath(p)
        if key not in seen:
            seen.add(key)
            sources.append(FileSource(p))

    for p in paths:
        p = Path(p)
        if p.is_dir():
            files = p.rglob("*") if recursive else p.glob("*")
            for f in sorted(files):
                if f.is_file() and is_image_file(f):
                    add(f)
        elif p.is_file() and is_image_file(p):
            add(p)
    return sources


def decode_image(data):
    """
    把原图字节解码为 PIL.Image，并按 EXIF 修正方向

    异常:
        DecodeFailure: 不是有效的图片
    """
    try:
        img = Image.open(io.BytesIO(data))
        img = ImageOps.exif_transpose(img)  # 修正 EXIF 方向
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise DecodeFailure(f"无法解码图片: {e}") from e
    return img
