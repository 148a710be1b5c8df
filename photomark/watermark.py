# photomark/watermark.py
"""
水印合成

render() 是唯一入口：根据 spec.kind 选择文字或图片水印的绘制方式，
两种水印共用同一套定位（画布中心 + 缩放后的偏移）、旋转与阴影逻辑。
"""
import io
import logging
import math
from dataclasses import dataclass
from typing import NamedTuple

from PIL import Image, ImageFilter
from PIL.ImageQt import ImageQt, fromqimage
from PySide6.QtCore import QRectF, Qt
from PySide6.QtGui import QBrush, QColor, QImage, QPainter, QPen, QTransform

from photomark.config import SHADOW_ALPHA, SHADOW_BLUR, SHADOW_COLOR, SHADOW_OFFSET
from photomark.errors import RenderFailure
from photomark.geometry import Size
from photomark.settings import WatermarkKind
from photomark.text_path import build_outline, ensure_gui_app, measure_text

logger = logging.getLogger(__name__)


class Shadow(NamedTuple):
    """阴影参数，offset 与 blur 为预览坐标单位"""
    color: tuple = SHADOW_COLOR
    alpha: float = SHADOW_ALPHA
    offset: tuple = SHADOW_OFFSET
    blur: float = SHADOW_BLUR

    def extent(self, scale):
        """阴影在输出像素下向外扩展的最大距离"""
        radius = self.blur * scale / 2
        return int(math.ceil(radius * 3 + max(abs(self.offset[0]), abs(self.offset[1])) * scale)) + 1


DEFAULT_SHADOW = Shadow()


class _SkipWatermark(Exception):
    """水印参数无法使用，保留原图"""


@dataclass
class _Layer:
    image: Image.Image      # RGBA
    origin: tuple           # 在画布上的左上角


def _qcolor(rgba, opacity=1.0):
    if len(rgba) != 4 or any(not 0.0 <= c <= 1.0 for c in rgba):
        raise _SkipWatermark(f"无效的颜色: {rgba!r}")
    r, g, b, a = rgba
    return QColor.fromRgbF(r, g, b, a * max(0.0, min(1.0, opacity)))


def _placement(size, spec, scale):
    """
    水印中心在画布上的变换：平移到画布中心 + 偏移，再绕该点顺时针旋转

    Qt 画布与预览视口同为 y 轴向下，偏移与角度直接使用。
    """
    w, h = size
    offset = spec.anchor_offset.scaled(scale)
    transform = QTransform()
    transform.translate(w / 2 + offset.x, h / 2 + offset.y)
    transform.rotate(spec.rotation)
    return transform


def _paint_layer(canvas_size, transform, local_rect, draw, margin):
    """
    在透明图层上绘制一个形状

    参数:
        canvas_size: 画布尺寸
        transform: 形状局部坐标 -> 画布坐标
        local_rect: 形状在局部坐标下的外接矩形（已包含描边宽度）
        draw: 回调，接收已设置好变换的 QPainter
        margin: 画布外仍需保留的范围（阴影可能投射进画布）

    返回:
        _Layer，形状完全在画布外时返回 None
    """
    w, h = canvas_size
    bounds = transform.mapRect(local_rect)
    left = max(int(math.floor(bounds.left())) - 1, -margin)
    top = max(int(math.floor(bounds.top())) - 1, -margin)
    right = min(int(math.ceil(bounds.right())) + 1, w + margin)
    bottom = min(int(math.ceil(bounds.bottom())) + 1, h + margin)
    if right <= left or bottom <= top:
        return None

    image = QImage(right - left, bottom - top, QImage.Format.Format_ARGB32_Premultiplied)
    if image.isNull():
        raise RenderFailure(f"无法创建 {right - left}x{bottom - top} 的图层")
    image.fill(Qt.GlobalColor.transparent)

    painter = QPainter(image)
    try:
        painter.setRenderHints(
            QPainter.RenderHint.Antialiasing | QPainter.RenderHint.SmoothPixmapTransform
        )
        painter.setTransform(transform * QTransform.fromTranslate(-left, -top))
        draw(painter)
    finally:
        painter.end()

    return _Layer(fromqimage(image).convert("RGBA"), (left, top))


def _text_layers(canvas_size, spec, scale, margin):
    style = spec.text
    fill_color = _qcolor(style.color, style.opacity)
    # 描边与填充共用同一个不透明度
    stroke_color = _qcolor(style.stroke_color, style.opacity) if style.stroke_enabled else None

    outline = build_outline(
        style.text, style.font_family, style.font_size * scale,
        bold=style.bold, italic=style.italic,
    )
    if outline.is_empty:
        return []

    # 以文字外接矩形中心为旋转中心，而不是基线起点
    cx, cy = outline.bounds.center
    transform = QTransform.fromTranslate(-cx, -cy) * _placement(canvas_size, spec, scale)
    b = outline.bounds
    stroke_width = style.stroke_width * scale
    pad = stroke_width / 2 if stroke_color is not None else 0.0
    local_rect = QRectF(b.x - pad, b.y - pad, b.width + 2 * pad, b.height + 2 * pad)

    layers = []
    if stroke_color is not None and stroke_width > 0:
        pen = QPen(stroke_color)
        pen.setWidthF(stroke_width)
        pen.setJoinStyle(Qt.PenJoinStyle.RoundJoin)
        layers.append(_paint_layer(
            canvas_size, transform, local_rect,
            lambda painter: painter.strokePath(outline.path, pen), margin,
        ))

    brush = QBrush(fill_color)
    layers.append(_paint_layer(
        canvas_size, transform, local_rect,
        lambda painter: painter.fillPath(outline.path, brush), margin,
    ))
    return layers


def _decode_watermark_image(data):
    if not data:
        raise _SkipWatermark("未设置水印图片")
    try:
        wm = Image.open(io.BytesIO(data))
        wm.load()
    except (OSError, ValueError) as e:
        raise _SkipWatermark(f"水印图片无法解码: {e}") from e
    return wm.convert("RGBA")


def _image_layers(canvas_size, spec, scale, margin):
    style = spec.image
    wm = _decode_watermark_image(style.data)

    w = int(round(wm.width * style.scale * scale))
    h = int(round(wm.height * style.scale * scale))
    if w < 1 or h < 1:
        return []
    if (w, h) != wm.size:
        wm = wm.resize((w, h), Image.LANCZOS)

    qimage = ImageQt(wm)
    opacity = max(0.0, min(1.0, style.opacity))

    def draw(painter):
        painter.setOpacity(opacity)
        painter.drawImage(QRectF(-w / 2, -h / 2, w, h), qimage)

    layer = _paint_layer(
        canvas_size, _placement(canvas_size, spec, scale),
        QRectF(-w / 2, -h / 2, w, h), draw, margin,
    )
    return [layer]


_RENDERERS = {
    WatermarkKind.TEXT: _text_layers,
    WatermarkKind.IMAGE: _image_layers,
}


def _paste_over(canvas, image, origin):
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(image, origin)
    return Image.alpha_composite(canvas, layer)


def _composite(canvas, layer, shadow, scale):
    """先画阴影再画图层，阴影由图层自身的 alpha 生成"""
    left, top = layer.origin
    if shadow is not None:
        radius = shadow.blur * scale / 2
        pad = int(math.ceil(radius * 3)) + 1
        alpha = layer.image.getchannel("A").point(lambda a: int(round(a * shadow.alpha)))
        mask = Image.new("L", (alpha.width + 2 * pad, alpha.height + 2 * pad), 0)
        mask.paste(alpha, (pad, pad))
        if radius > 0:
            mask = mask.filter(ImageFilter.GaussianBlur(radius=radius))
        shadow_img = Image.new("RGBA", mask.size, (*shadow.color[:3], 0))
        shadow_img.putalpha(mask)
        dx = int(round(shadow.offset[0] * scale))
        dy = int(round(shadow.offset[1] * scale))
        canvas = _paste_over(canvas, shadow_img, (left - pad + dx, top - pad + dy))
    return _paste_over(canvas, layer.image, (left, top))


def render(background, spec, geometry, shadow=DEFAULT_SHADOW):
    """
    把水印绘制到已缩放到输出尺寸的背景图上

    参数:
        background: PIL.Image，尺寸为 geometry.output_size
        spec: WatermarkSpec
        geometry: RenderGeometry，提供预览单位 -> 输出像素的缩放系数
        shadow: 阴影参数，None 表示不画阴影

    返回:
        合成后的 RGBA 图像；背景无法读取、颜色或水印图片无效时返回原图

    异常:
        RenderFailure: 无法分配绘制用的图层
    """
    try:
        canvas = background.convert("RGBA")
    except (OSError, ValueError) as e:
        logger.warning("背景图无法读取，跳过水印: %s", e)
        return background

    ensure_gui_app()
    scale = geometry.scale
    margin = shadow.extent(scale) if shadow is not None else 0

    try:
        layers = _RENDERERS[spec.kind](canvas.size, spec, scale, margin)
    except _SkipWatermark as e:
        logger.warning("%s，保留原图", e)
        return background
    except MemoryError as e:
        raise RenderFailure("内存不足，无法绘制水印") from e

    try:
        for layer in layers:
            if layer is not None:
                canvas = _composite(canvas, layer, shadow, scale)
    except MemoryError as e:
        raise RenderFailure("内存不足，无法合成水印") from e
    return canvas


def measure_watermark(spec, scale=1.0):
    """水印在预览坐标（或乘以 scale 后的输出像素）下的外接尺寸，不考虑旋转"""
    if spec.kind is WatermarkKind.TEXT:
        style = spec.text
        return measure_text(
            style.text, style.font_family, style.font_size * scale,
            bold=style.bold, italic=style.italic,
        )
    try:
        wm = _decode_watermark_image(spec.image.data)
    except _SkipWatermark:
        return Size(0.0, 0.0)
    return Size(wm.width * spec.image.scale * scale, wm.height * spec.image.scale * scale)
