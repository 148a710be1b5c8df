# photomark/anchor.py
from enum import Enum

from photomark.config import ANCHOR_MARGIN
from photomark.geometry import Offset, fit_rect


class Alignment(Enum):
    """九宫格位置，值为 (列, 行)，-1 表示左/上，1 表示右/下"""
    TOP_LEFT = (-1, -1)
    TOP = (0, -1)
    TOP_RIGHT = (1, -1)
    LEFT = (-1, 0)
    CENTER = (0, 0)
    RIGHT = (1, 0)
    BOTTOM_LEFT = (-1, 1)
    BOTTOM = (0, 1)
    BOTTOM_RIGHT = (1, 1)

    @classmethod
    def from_name(cls, name):
        """支持 'bottom_right' / 'bottom-right' / 'BOTTOM_RIGHT' 等写法"""
        key = name.strip().upper().replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"未知的位置: {name}") from None


def solve_anchor(alignment, render_rect, watermark_size, margin=ANCHOR_MARGIN, clamp=False):
    """
    计算九宫格位置对应的水印中心偏移（相对图片中心，预览坐标单位）

    每个轴上可移动的半径为 dim/2 - 水印尺寸/2 - margin。
    水印比图片还大时半径为负数，默认原样返回（水印会超出画面），
    clamp=True 时负半径按 0 处理，即该轴居中。
    """
    col, row = alignment.value
    wm_w, wm_h = watermark_size

    half_w = render_rect.width / 2 - wm_w / 2 - margin
    half_h = render_rect.height / 2 - wm_h / 2 - margin
    if clamp:
        half_w = max(half_w, 0.0)
        half_h = max(half_h, 0.0)

    return Offset(col * half_w if col else 0.0, row * half_h if row else 0.0)


def snap_to(spec, alignment, source_size, viewport_size, margin=ANCHOR_MARGIN, clamp=False):
    """
    把水印吸附到九宫格位置，返回更新了 anchor_offset 的新 spec

    视口或图片尺寸无效时原样返回。
    """
    # 按需导入，纯几何计算时不加载 Qt
    from photomark.watermark import measure_watermark

    render_rect = fit_rect(source_size, viewport_size)
    if render_rect.is_empty:
        return spec
    size = measure_watermark(spec)
    return spec.with_offset(solve_anchor(alignment, render_rect, size, margin=margin, clamp=clamp))
