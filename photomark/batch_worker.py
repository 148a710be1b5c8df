# photomark/batch_worker.py
"""
批量导出

一次导出任务按输入顺序逐张处理：读取 -> 解码 -> 缩放 -> 合成水印 -> 编码 -> 写入。
单张失败只记录在对应的 ExportResult 中，不会中断整个任务；
只有会覆盖原图的配置（ConfigConflict）会在处理任何图片之前直接拒绝。
"""
import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from PIL import Image

from photomark.config import DEFAULT_PREFIX, DEFAULT_SUFFIX
from photomark.errors import ConfigConflict, ExportItemError, FailureReason, RenderFailure
from photomark.exporter import OutputDirectory, OutputFormat, encode_image
from photomark.geometry import RenderGeometry
from photomark.image_io import decode_image
from photomark.text_path import ensure_gui_app
from photomark.watermark import render

logger = logging.getLogger(__name__)


class ScaleMode(str, Enum):
    NONE = "none"
    BY_WIDTH = "by_width"
    BY_HEIGHT = "by_height"
    BY_PERCENTAGE = "by_percentage"


@dataclass(frozen=True)
class ScalePolicy:
    mode: ScaleMode = ScaleMode.NONE
    value: int = 100

    def __post_init__(self):
        if self.mode is not ScaleMode.NONE and self.value <= 0:
            raise ValueError(f"缩放参数必须为正数: {self.value}")

    def output_size(self, source_size):
        """按缩放模式计算输出尺寸，保持宽高比"""
        w, h = source_size
        if self.mode is ScaleMode.BY_WIDTH:
            new_w, new_h = self.value, self.value / w * h
        elif self.mode is ScaleMode.BY_HEIGHT:
            new_w, new_h = self.value / h * w, self.value
        elif self.mode is ScaleMode.BY_PERCENTAGE:
            factor = self.value / 100
            new_w, new_h = w * factor, h * factor
        else:
            return (w, h)
        return (max(1, int(round(new_w))), max(1, int(round(new_h))))


class NamingMode(str, Enum):
    KEEP_ORIGINAL = "keep_original"
    ADD_PREFIX = "add_prefix"
    ADD_SUFFIX = "add_suffix"


@dataclass(frozen=True)
class NamingRule:
    mode: NamingMode = NamingMode.ADD_SUFFIX
    value: str = DEFAULT_SUFFIX

    @classmethod
    def keep_original(cls):
        return cls(NamingMode.KEEP_ORIGINAL, "")

    @classmethod
    def add_prefix(cls, prefix=DEFAULT_PREFIX):
        return cls(NamingMode.ADD_PREFIX, prefix)

    @classmethod
    def add_suffix(cls, suffix=DEFAULT_SUFFIX):
        return cls(NamingMode.ADD_SUFFIX, suffix)

    def filename(self, stem, output_format):
        """扩展名只由输出格式决定，与原图扩展名无关"""
        ext = output_format.extension
        if self.mode is NamingMode.ADD_PREFIX:
            return f"{self.value}{stem}.{ext}"
        if self.mode is NamingMode.ADD_SUFFIX:
            return f"{stem}{self.value}.{ext}"
        return f"{stem}.{ext}"


@dataclass
class ExportJob:
    """
    一次导出任务

    参数:
        sources: 原图列表（FileSource 或实现了 name/stem/parent/read_bytes 的对象），按顺序处理
        destination: 输出文件夹，OutputDirectory 或路径
        scale: 输出尺寸策略
        naming: 输出文件命名规则
        output_format: 输出格式与 JPEG 质量
    """
    sources: list
    destination: OutputDirectory
    scale: ScalePolicy = field(default_factory=ScalePolicy)
    naming: NamingRule = field(default_factory=NamingRule)
    output_format: OutputFormat = field(default_factory=OutputFormat)

    def __post_init__(self):
        self.sources = list(self.sources)
        if not isinstance(self.destination, OutputDirectory):
            self.destination = OutputDirectory(self.destination)

    def check_conflict(self):
        """保留原文件名且输出到原图所在文件夹会覆盖原图"""
        if self.naming.mode is not NamingMode.KEEP_ORIGINAL:
            return
        for source in self.sources:
            if self.destination.contains(source):
                raise ConfigConflict(
                    f"输出文件夹与原图所在文件夹相同 ({self.destination})，"
                    f"保留原文件名会覆盖原图，请更换输出文件夹或命名规则"
                )


@dataclass
class ExportResult:
    source: object
    ok: bool
    bytes_written: int = 0
    output_path: Path = None
    reason: FailureReason = None
    message: str = ""


def summary_text(results, total=None):
    """导出结果摘要，例如 "2 / 3" """
    success = sum(1 for r in results if r.ok)
    return f"{success} / {len(results) if total is None else total}"


def export_one(source, job, spec, viewport_size):
    """处理单张图片，任何失败都转换为失败的 ExportResult"""
    filename = job.naming.filename(source.stem, job.output_format)
    try:
        img = decode_image(source.read_bytes())
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")

        out_size = job.scale.output_size(img.size)
        try:
            background = img.resize(out_size, Image.LANCZOS) if out_size != img.size else img
        except MemoryError as e:
            raise RenderFailure(f"无法缩放到 {out_size[0]}x{out_size[1]}") from e

        geometry = RenderGeometry.compute(img.size, out_size, viewport_size)
        composed = render(background, spec, geometry)
        data = encode_image(composed, job.output_format)
        written = job.destination.write_bytes(filename, data)
    except ExportItemError as e:
        logger.warning("✗ %s: %s", source.name, e)
        return ExportResult(source, False, reason=e.reason, message=str(e))
    except Exception as e:
        logger.exception("✗ %s: 处理失败", source.name)
        return ExportResult(source, False, reason=FailureReason.RENDER, message=str(e))

    logger.info("✓ %s -> %s", source.name, filename)
    return ExportResult(source, True, bytes_written=written,
                        output_path=job.destination.path / filename)


def run_export(job, spec, viewport_size, progress_callback=None, cancel_event=None):
    """
    按顺序导出所有图片

    参数:
        job: ExportJob
        spec: WatermarkSpec
        viewport_size: 导出时预览视口的尺寸，用于换算水印位置与大小
        progress_callback(idx, total, result): 每处理完一张调用一次
        cancel_event: threading.Event，置位后不再处理后续图片（当前图片会完整处理完）

    返回:
        list[ExportResult]，与输入顺序一致

    异常:
        ConfigConflict: 配置会覆盖原图，此时不会处理任何图片
    """
    job.check_conflict()

    results = []
    total = len(job.sources)
    for idx, source in enumerate(job.sources, start=1):
        if cancel_event is not None and cancel_event.is_set():
            logger.info("导出已取消，剩余 %d 张未处理", total - idx + 1)
            break
        result = export_one(source, job, spec, viewport_size)
        results.append(result)
        if progress_callback:
            progress_callback(idx, total, result)

    logger.info("导出完成: %s 张图片已保存到 %s", summary_text(results, total), job.destination)
    return results


class ExportWorker:
    """
    在后台线程执行导出任务，避免阻塞界面

    同一时间只有一个任务在执行；cancel() 只会阻止后续图片开始处理。
    """

    def __init__(self, job, spec, viewport_size, progress_callback=None):
        self.job = job
        self.spec = spec
        self.viewport_size = viewport_size
        self.progress_callback = progress_callback
        self._cancel = threading.Event()
        self._executor = None
        self._future = None

    def start(self):
        if self._future is not None:
            return self._future
        # Qt 应用实例需要在主线程创建
        ensure_gui_app()
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        self._future = self._executor.submit(
            run_export, self.job, self.spec, self.viewport_size,
            self.progress_callback, self._cancel,
        )
        self._executor.shutdown(wait=False)
        return self._future

    def cancel(self):
        self._cancel.set()

    def result(self, timeout=None):
        if self._future is None:
            raise RuntimeError("导出任务尚未开始，请先调用 start()")
        return self._future.result(timeout=timeout)
