# photomark/geometry.py
"""
坐标换算

涉及三套坐标:
    1. 预览视口 (viewport)：用户拖动水印时的坐标单位
    2. 视口内按比例居中显示的图片区域 (render rect，类似 letterbox)
    3. 最终导出图片的像素坐标 (output)

水印的偏移、字号、描边宽度都以预览视口单位保存，渲染时统一乘以
scale = output.width / render_rect.width 换算成输出像素。
"""
import logging
from typing import NamedTuple

logger = logging.getLogger(__name__)


class Size(NamedTuple):
    width: float
    height: float

    @property
    def is_empty(self):
        return self.width <= 0 or self.height <= 0


class Offset(NamedTuple):
    """相对图片中心的偏移，y 轴向下为正"""
    x: float = 0.0
    y: float = 0.0

    def scaled(self, factor):
        return Offset(self.x * factor, self.y * factor)


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float

    @property
    def size(self):
        return Size(self.width, self.height)

    @property
    def center(self):
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def is_empty(self):
        return self.width <= 0 or self.height <= 0


EMPTY_RECT = Rect(0.0, 0.0, 0.0, 0.0)


def fit_rect(source_size, viewport_size):
    """
    计算图片在视口中等比缩放、居中后实际占用的矩形（contain 适配）

    参数:
        source_size: 图片原始尺寸 (w, h)
        viewport_size: 预览视口尺寸 (w, h)

    返回:
        Rect: 视口坐标下的图片区域；任一尺寸为 0 时返回空矩形
    """
    sw, sh = source_size
    vw, vh = viewport_size
    if sw <= 0 or sh <= 0 or vw <= 0 or vh <= 0:
        return EMPTY_RECT

    source_aspect = sw / sh
    viewport_aspect = vw / vh

    if source_aspect > viewport_aspect:
        # 图片相对更宽：撑满宽度，上下留边
        width = float(vw)
        height = width / source_aspect
        return Rect(0.0, (vh - height) / 2, width, height)

    # 图片相对更高：撑满高度，左右留边
    height = float(vh)
    width = height * source_aspect
    return Rect((vw - width) / 2, 0.0, width, height)


def scale_factor(output_size, render_rect):
    """视口单位 -> 输出像素 的换算系数，以宽度为准"""
    if render_rect.width <= 0:
        raise ValueError("render_rect 为空，无法计算缩放系数")
    return output_size[0] / render_rect.width


class RenderGeometry(NamedTuple):
    """单次渲染用到的几何信息，每次渲染重新计算，不做持久化"""
    source_size: Size
    output_size: Size
    viewport_size: Size
    render_rect: Rect
    scale: float

    @classmethod
    def compute(cls, source_size, output_size, viewport_size):
        source_size = Size(*source_size)
        output_size = Size(*output_size)
        viewport_size = Size(*viewport_size)

        render_rect = fit_rect(source_size, viewport_size)
        if render_rect.is_empty:
            # 没有有效的预览尺寸时，把输出图片本身当作视口，偏移按输出像素解释
            logger.warning(
                "预览尺寸无效 %sx%s，按输出尺寸计算水印位置",
                viewport_size.width, viewport_size.height,
            )
            viewport_size = output_size
            render_rect = fit_rect(source_size, output_size)
            if render_rect.is_empty:
                render_rect = Rect(0.0, 0.0, output_size.width, output_size.height)

        if render_rect.is_empty:
            scale = 1.0
        else:
            scale = scale_factor(output_size, render_rect)
        return cls(source_size, output_size, viewport_size, render_rect, scale)
