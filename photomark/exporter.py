# photomark/exporter.py
import io
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from photomark.config import DEFAULT_JPEG_QUALITY
from photomark.errors import EncodeFailure, PermissionFailure, WriteFailure

logger = logging.getLogger(__name__)


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"


@dataclass(frozen=True)
class OutputFormat:
    """输出格式：PNG 无损，JPEG 有损，quality 取值 0..1"""
    kind: ImageFormat = ImageFormat.PNG
    quality: float = DEFAULT_JPEG_QUALITY

    @classmethod
    def png(cls):
        return cls(ImageFormat.PNG)

    @classmethod
    def jpeg(cls, quality=DEFAULT_JPEG_QUALITY):
        if not 0.0 <= quality <= 1.0:
            raise ValueError("JPEG 质量必须在 0 到 1 之间")
        return cls(ImageFormat.JPEG, quality)

    @property
    def extension(self):
        return "png" if self.kind is ImageFormat.PNG else "jpg"


def encode_image(img, output_format):
    """
    按输出格式编码图片

    JPEG 不支持透明通道，编码前转为 RGB。

    异常:
        EncodeFailure: 编码失败
    """
    buffer = io.BytesIO()
    try:
        if output_format.kind is ImageFormat.JPEG:
            quality = max(1, min(100, int(round(output_format.quality * 100))))
            img.convert('RGB').save(buffer, 'JPEG', quality=quality, optimize=True)
        else:
            img.save(buffer, 'PNG', compress_level=6)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeFailure(f"{output_format.kind.value} 编码失败: {e}") from e
    return buffer.getvalue()


class OutputDirectory:
    """导出目标文件夹"""

    def __init__(self, path):
        self.path = Path(path)

    def contains(self, source):
        """原图是否就在这个文件夹里"""
        parent = Path(source.parent)
        try:
            return os.path.samefile(parent, self.path)
        except OSError:
            return os.path.abspath(parent) == os.path.abspath(self.path)

    def write_bytes(self, filename, data):
        """
        写入文件，返回写入的字节数

        先写临时文件再替换，写入失败不会留下不完整的输出文件。
        """
        dst = self.path / filename
        tmp_name = None
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".photomark-", suffix=".part", dir=self.path)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, dst)
            tmp_name = None
        except PermissionError as e:
            raise PermissionFailure(f"没有写入权限: {dst}") from e
        except OSError as e:
            raise WriteFailure(f"写入失败 {dst}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.remove(tmp_name)
        logger.debug("已保存: %s (%d bytes)", dst, len(data))
        return len(data)

    def __str__(self):
        return str(self.path)
