# photomark/settings.py
"""
水印设置（模板）数据模型

WatermarkSpec 同时保存文字水印和图片水印两组参数，由 kind 决定当前生效的是哪一组，
这样切换类型或保存模板时另一组参数不会丢失。
"""
import base64
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum

from photomark.geometry import Offset

WHITE = (1.0, 1.0, 1.0, 1.0)
BLACK = (0.0, 0.0, 0.0, 1.0)


class WatermarkKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"


def _color(value):
    """把列表/元组转换成 4 分量 RGBA 浮点元组（0..1）"""
    rgba = tuple(float(c) for c in value)
    if len(rgba) == 3:
        rgba = rgba + (1.0,)
    if len(rgba) != 4:
        raise ValueError(f"颜色需要 4 个分量: {value!r}")
    return rgba


@dataclass(frozen=True)
class TextStyle:
    text: str = "Hello World"
    font_family: str = "Helvetica Neue"
    font_size: float = 48.0          # 预览坐标单位
    bold: bool = False
    italic: bool = False
    color: tuple = WHITE
    opacity: float = 0.5             # 描边与填充共用
    stroke_enabled: bool = False
    stroke_color: tuple = BLACK
    stroke_width: float = 2.0        # 预览坐标单位

    def to_dict(self):
        return {
            "text": self.text,
            "font_family": self.font_family,
            "font_size": self.font_size,
            "bold": self.bold,
            "italic": self.italic,
            "color": list(self.color),
            "opacity": self.opacity,
            "stroke_enabled": self.stroke_enabled,
            "stroke_color": list(self.stroke_color),
            "stroke_width": self.stroke_width,
        }

    @classmethod
    def from_dict(cls, data):
        default = cls()
        return cls(
            text=data.get("text", default.text),
            font_family=data.get("font_family", default.font_family),
            font_size=float(data.get("font_size", default.font_size)),
            bold=bool(data.get("bold", default.bold)),
            italic=bool(data.get("italic", default.italic)),
            color=_color(data.get("color", default.color)),
            opacity=float(data.get("opacity", default.opacity)),
            stroke_enabled=bool(data.get("stroke_enabled", default.stroke_enabled)),
            stroke_color=_color(data.get("stroke_color", default.stroke_color)),
            stroke_width=float(data.get("stroke_width", default.stroke_width)),
        )


@dataclass(frozen=True)
class ImageStyle:
    data: bytes = None               # 水印图片原始字节
    scale: float = 0.3               # 相对图片原始尺寸
    opacity: float = 1.0

    def to_dict(self):
        return {
            "data": base64.b64encode(self.data).decode("ascii") if self.data is not None else None,
            "scale": self.scale,
            "opacity": self.opacity,
        }

    @classmethod
    def from_dict(cls, data):
        default = cls()
        blob = data.get("data")
        return cls(
            data=base64.b64decode(blob) if blob is not None else None,
            scale=float(data.get("scale", default.scale)),
            opacity=float(data.get("opacity", default.opacity)),
        )


def _new_id():
    return str(uuid.uuid4())


@dataclass(frozen=True)
class WatermarkSpec:
    """
    一次渲染使用的完整水印描述，也是模板保存的内容

    anchor_offset 以预览视口单位保存（相对图片中心，y 向下为正），
    渲染时由 RenderGeometry.scale 换算成输出像素。
    rotation 为角度，顺时针为正，绕水印自身中心旋转。
    """
    id: str = field(default_factory=_new_id)
    name: str = "未命名模板"
    kind: WatermarkKind = WatermarkKind.TEXT
    anchor_offset: Offset = Offset()
    rotation: float = 0.0
    text: TextStyle = TextStyle()
    image: ImageStyle = ImageStyle()

    def with_offset(self, offset):
        return replace(self, anchor_offset=Offset(*offset))

    def renamed(self, name, new_id=False):
        """返回改名后的副本；new_id=True 时另存为新模板"""
        if new_id:
            return replace(self, name=name, id=_new_id())
        return replace(self, name=name)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "anchor_offset": [self.anchor_offset.x, self.anchor_offset.y],
            "rotation": self.rotation,
            "text": self.text.to_dict(),
            "image": self.image.to_dict(),
        }

    @classmethod
    def from_dict(cls, data):
        offset = data.get("anchor_offset", (0.0, 0.0))
        return cls(
            id=data.get("id") or _new_id(),
            name=data.get("name", "未命名模板"),
            kind=WatermarkKind(data.get("kind", WatermarkKind.TEXT.value)),
            anchor_offset=Offset(float(offset[0]), float(offset[1])),
            rotation=float(data.get("rotation", 0.0)),
            text=TextStyle.from_dict(data.get("text", {})),
            image=ImageStyle.from_dict(data.get("image", {})),
        )
