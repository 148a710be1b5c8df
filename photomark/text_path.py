# photomark/text_path.py
"""
文字轮廓生成

把一行文字转换成矢量路径 (QPainterPath)，单位为输出像素。
填充与描边共用同一条路径，旋转、缩放都在路径上完成，
因此任何导出分辨率下的效果一致。
"""
import logging
import os
import sys
from dataclasses import dataclass

from PIL import ImageFont
from PySide6.QtCore import QByteArray, QPointF, Qt
from PySide6.QtGui import (
    QFont, QFontDatabase, QGuiApplication, QPainterPath, QPainterPathStroker,
    QRawFont, QTransform
)

from photomark.geometry import EMPTY_RECT, Rect, Size

logger = logging.getLogger(__name__)

# 斜体模拟的剪切系数
ITALIC_SHEAR = 0.2
# 粗体模拟时加粗描边占字号的比例
BOLD_STROKE_RATIO = 1 / 24

_app = None
_font_files = {}        # 字体文件路径 -> 注册后的字体族名
_bundled_family = None  # Pillow 自带字体注册后的族名


def ensure_gui_app():
    """
    字体相关的 Qt 功能需要 QGuiApplication 实例

    已有实例（例如界面程序的 QApplication）时直接复用；
    没有显示器的 Linux 环境下使用 offscreen 平台。
    """
    global _app
    app = QGuiApplication.instance()
    if app is not None:
        return app
    if sys.platform.startswith("linux") and not (
        os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")
    ):
        os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    _app = QGuiApplication([])
    return _app


@dataclass
class TextOutline:
    path: QPainterPath
    bounds: Rect

    @property
    def size(self):
        return self.bounds.size

    @property
    def is_empty(self):
        return self.path.isEmpty() or self.bounds.is_empty


def _family_from_file(path):
    """注册字体文件，返回字体族名；失败返回 None"""
    if path in _font_files:
        return _font_files[path]
    font_id = QFontDatabase.addApplicationFont(path)
    families = QFontDatabase.applicationFontFamilies(font_id) if font_id != -1 else []
    family = families[0] if families else None
    if family is None:
        logger.debug("字体文件无法加载: %s", path)
    _font_files[path] = family
    return family


def _bundled_font_family():
    """系统中没有任何可用字体时，把 Pillow 自带的字体注册给 Qt"""
    global _bundled_family
    if _bundled_family is None:
        font = ImageFont.load_default(size=12)
        data = getattr(font, "font_bytes", None)
        if data:
            font_id = QFontDatabase.addApplicationFontFromData(QByteArray(data))
            families = QFontDatabase.applicationFontFamilies(font_id) if font_id != -1 else []
            _bundled_family = families[0] if families else ""
        else:
            _bundled_family = ""
    return _bundled_family or None


def resolve_font(family, bold=False, italic=False):
    """
    根据字体族名（或字体文件路径）与粗体/斜体得到 QFont

    找不到该字体时回退到系统默认字体，不会抛出异常。
    """
    ensure_gui_app()

    resolved = None
    if family and os.path.isfile(family):
        resolved = _family_from_file(family)
    elif family and family in QFontDatabase.families():
        resolved = family

    if resolved:
        font = QFont(resolved)
    else:
        logger.debug("字体 %r 不可用，使用系统默认字体", family)
        font = QFontDatabase.systemFont(QFontDatabase.SystemFont.GeneralFont)

    font.setBold(bold)
    font.setItalic(italic)
    return font


def _raw_font(font, size_px):
    raw = QRawFont.fromFont(font)
    if not raw.isValid():
        fallback = _bundled_font_family()
        if fallback:
            logger.debug("系统字体不可用，使用内置字体 %s", fallback)
            substitute = QFont(fallback)
            substitute.setBold(font.bold())
            substitute.setItalic(font.italic())
            raw = QRawFont.fromFont(substitute)
    if raw.isValid():
        raw.setPixelSize(size_px)
    return raw


def _path_bounds(path):
    if path.isEmpty():
        return EMPTY_RECT
    r = path.boundingRect()
    return Rect(r.x(), r.y(), r.width(), r.height())


def build_outline(text, font_family, size_px, bold=False, italic=False):
    """
    生成单行文字的轮廓路径

    参数:
        text: 文字内容（不换行）
        font_family: 字体族名或字体文件路径
        size_px: 字号，输出像素
        bold, italic: 字形样式，字体没有对应字重/斜体时用描边加粗和剪切变换模拟

    返回:
        TextOutline: 路径原点在第一个字形的基线起点；空字符串得到空路径
    """
    path = QPainterPath()
    if not text or size_px <= 0:
        return TextOutline(path, EMPTY_RECT)

    font = resolve_font(font_family, bold=bold, italic=italic)
    raw = _raw_font(font, size_px)
    if not raw.isValid():
        logger.warning("没有可用字体，跳过文字绘制")
        return TextOutline(path, EMPTY_RECT)

    # 逐个字形按笔位 (advance) 拼接
    glyphs = raw.glyphIndexesForString(text)
    advances = raw.advancesForGlyphIndexes(glyphs, QRawFont.LayoutFlag.KernedAdvances)
    pen = QPointF(0, 0)
    for glyph, advance in zip(glyphs, advances):
        glyph_path = raw.pathForGlyph(glyph)
        glyph_path.translate(pen)
        path.addPath(glyph_path)
        pen = pen + advance

    path.setFillRule(Qt.FillRule.WindingFill)

    if bold and raw.weight() < QFont.Weight.DemiBold.value:
        stroker = QPainterPathStroker()
        stroker.setWidth(size_px * BOLD_STROKE_RATIO)
        stroker.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
        path = path.united(stroker.createStroke(path))

    if italic and raw.style() == QFont.Style.StyleNormal:
        path = QTransform(1, 0, -ITALIC_SHEAR, 1, 0, 0).map(path)

    return TextOutline(path, _path_bounds(path))


def measure_text(text, font_family, size_px, bold=False, italic=False):
    """文字轮廓的外接尺寸，供九宫格定位使用"""
    outline = build_outline(text, font_family, size_px, bold=bold, italic=italic)
    if outline.is_empty:
        return Size(0.0, 0.0)
    return outline.size
