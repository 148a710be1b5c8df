# photomark/errors.py
from enum import Enum


class FailureReason(str, Enum):
    """单张图片导出失败的原因标签"""
    DECODE = "decode"
    RENDER = "render"
    ENCODE = "encode"
    WRITE = "write"
    PERMISSION = "permission"


class WatermarkError(Exception):
    """所有水印错误的基类"""


class ExportItemError(WatermarkError):
    """
    只影响单张图片的错误

    批量导出流程捕获后记录到对应的 ExportResult 中，然后继续处理下一张。
    """
    reason = None


class DecodeFailure(ExportItemError):
    reason = FailureReason.DECODE


class RenderFailure(ExportItemError):
    reason = FailureReason.RENDER


class EncodeFailure(ExportItemError):
    reason = FailureReason.ENCODE


class WriteFailure(ExportItemError):
    reason = FailureReason.WRITE


class PermissionFailure(ExportItemError):
    reason = FailureReason.PERMISSION


class ConfigConflict(WatermarkError):
    """导出目录与原图目录相同且命名规则为保留原名，会覆盖原图，整个任务直接拒绝"""
