import io
from dataclasses import replace

import pytest
from PIL import Image

from conftest import alpha_bbox, bbox_center, png_bytes
from photomark.geometry import Offset, RenderGeometry
from photomark.settings import ImageStyle, TextStyle, WatermarkKind, WatermarkSpec
from photomark.watermark import measure_watermark, render


def text_spec(**text_kwargs):
    style = dict(text="Hello", font_family="DejaVu Sans", font_size=48, color=(1, 1, 1, 1), opacity=1.0)
    style.update(text_kwargs)
    return WatermarkSpec(kind=WatermarkKind.TEXT, text=TextStyle(**style))


def transparent(size):
    return Image.new("RGBA", size, (0, 0, 0, 0))


def test_hello_is_centred_on_canvas():
    geometry = RenderGeometry.compute((1000, 500), (1000, 500), (1000, 500))
    assert geometry.scale == pytest.approx(1.0)

    out = render(transparent((1000, 500)), text_spec(), geometry, shadow=None)
    cx, cy = bbox_center(alpha_bbox(out))
    assert cx == pytest.approx(500, abs=1)
    assert cy == pytest.approx(250, abs=1)


@pytest.mark.parametrize("n", [1, 2, 4])
def test_text_position_scales_with_output(n):
    spec = text_spec().with_offset((40, -25))
    # 视口中图片显示为 400x200，输出为 n 倍
    geometry = RenderGeometry.compute((400, 200), (400 * n, 200 * n), (400, 200))
    assert geometry.scale == pytest.approx(n)

    out = render(transparent((400 * n, 200 * n)), spec, geometry, shadow=None)
    cx, cy = bbox_center(alpha_bbox(out))
    assert cx == pytest.approx(200 * n + 40 * n, abs=1.5)
    assert cy == pytest.approx(100 * n - 25 * n, abs=1.5)


def test_text_size_scales_with_output():
    spec = text_spec()
    sizes = []
    for n in (1, 3):
        geometry = RenderGeometry.compute((400, 200), (400 * n, 200 * n), (400, 200))
        left, top, right, bottom = alpha_bbox(render(transparent((400 * n, 200 * n)), spec, geometry, shadow=None))
        sizes.append((right - left, bottom - top))
    assert sizes[1][0] == pytest.approx(sizes[0][0] * 3, abs=4)
    assert sizes[1][1] == pytest.approx(sizes[0][1] * 3, abs=4)


def test_render_is_deterministic():
    spec = text_spec(stroke_enabled=True, stroke_width=3, opacity=0.7).with_offset((-30, 20))
    spec = replace(spec, rotation=25.0)
    background = Image.new("RGB", (640, 360), (90, 120, 150))
    geometry = RenderGeometry.compute((640, 360), (640, 360), (800, 600))

    first = render(background, spec, geometry)
    second = render(background, spec, geometry)
    assert first.tobytes() == second.tobytes()


def test_text_rotates_about_its_centre():
    geometry = RenderGeometry.compute((600, 600), (600, 600), (600, 600))
    spec = text_spec(text="Hello World")
    upright = alpha_bbox(render(transparent((600, 600)), spec, geometry, shadow=None))
    turned = alpha_bbox(render(transparent((600, 600)), replace(spec, rotation=90.0), geometry, shadow=None))

    assert bbox_center(turned) == pytest.approx((300, 300), abs=1)
    assert turned[2] - turned[0] == pytest.approx(upright[3] - upright[1], abs=2)
    assert turned[3] - turned[1] == pytest.approx(upright[2] - upright[0], abs=2)


def test_positive_text_rotation_is_clockwise():
    geometry = RenderGeometry.compute((600, 600), (600, 600), (600, 600))
    spec = replace(text_spec(text="HHHHHHHHHH"), rotation=30.0)
    out = render(transparent((600, 600)), spec, geometry, shadow=None)

    # 顺时针旋转后文字右端比左端低
    left_end = alpha_bbox(out.crop((0, 0, 220, 600)))
    right_end = alpha_bbox(out.crop((380, 0, 600, 600)))
    assert bbox_center(right_end)[1] > bbox_center(left_end)[1] + 50


def test_stroke_layer_enlarges_text():
    geometry = RenderGeometry.compute((600, 300), (600, 300), (600, 300))
    plain = alpha_bbox(render(transparent((600, 300)), text_spec(), geometry, shadow=None))
    stroked = alpha_bbox(render(
        transparent((600, 300)),
        text_spec(stroke_enabled=True, stroke_width=8, stroke_color=(0, 0, 0, 1)),
        geometry, shadow=None,
    ))
    assert stroked[2] - stroked[0] >= plain[2] - plain[0] + 6
    assert stroked[3] - stroked[1] >= plain[3] - plain[1] + 6


def test_text_opacity_applies_to_fill():
    geometry = RenderGeometry.compute((400, 200), (400, 200), (400, 200))
    spec = text_spec(text="H", font_size=120, opacity=0.5)
    out = render(transparent((400, 200)), spec, geometry, shadow=None)
    assert max(out.getchannel("A").getdata()) == pytest.approx(128, abs=2)


def test_shadow_is_drawn_below_and_right():
    geometry = RenderGeometry.compute((400, 200), (400, 200), (400, 200))
    without = alpha_bbox(render(transparent((400, 200)), text_spec(), geometry, shadow=None))
    with_shadow = alpha_bbox(render(transparent((400, 200)), text_spec(), geometry))
    assert with_shadow[2] > without[2]
    assert with_shadow[3] > without[3]


def test_empty_text_leaves_background_untouched():
    background = Image.new("RGBA", (100, 50), (10, 20, 30, 255))
    geometry = RenderGeometry.compute((100, 50), (100, 50), (100, 50))
    out = render(background, text_spec(text=""), geometry)
    assert out.tobytes() == background.tobytes()


def test_invalid_color_returns_original():
    background = Image.new("RGB", (100, 50), (10, 20, 30))
    geometry = RenderGeometry.compute((100, 50), (100, 50), (100, 50))
    spec = text_spec(color=(2.0, 0, 0, 1))
    assert render(background, spec, geometry) is background


def image_spec(data, scale=1.0, opacity=1.0, offset=(0, 0), rotation=0.0):
    return WatermarkSpec(
        kind=WatermarkKind.IMAGE,
        anchor_offset=Offset(*offset),
        rotation=rotation,
        image=ImageStyle(data=data, scale=scale, opacity=opacity),
    )


def test_image_watermark_scaled_and_positioned():
    # 预览中 200x100 -> 输出 400x200，scale = 2
    geometry = RenderGeometry.compute((200, 100), (400, 200), (200, 100))
    spec = image_spec(png_bytes((40, 20)), scale=0.5, offset=(30, 10))
    out = render(transparent((400, 200)), spec, geometry, shadow=None)

    left, top, right, bottom = alpha_bbox(out)
    assert right - left == pytest.approx(40, abs=1)
    assert bottom - top == pytest.approx(20, abs=1)
    assert bbox_center((left, top, right, bottom)) == pytest.approx((200 + 60, 100 + 20), abs=1)
    assert out.getpixel((260, 120)) == (255, 0, 0, 255)


def test_image_watermark_opacity():
    geometry = RenderGeometry.compute((200, 100), (200, 100), (200, 100))
    out = render(transparent((200, 100)), image_spec(png_bytes((20, 20)), opacity=0.5), geometry, shadow=None)
    assert out.getpixel((100, 50))[3] == pytest.approx(128, abs=2)


def test_image_watermark_rotation():
    geometry = RenderGeometry.compute((300, 300), (300, 300), (300, 300))
    out = render(transparent((300, 300)), image_spec(png_bytes((120, 20)), rotation=90), geometry, shadow=None)
    left, top, right, bottom = alpha_bbox(out)
    assert right - left == pytest.approx(20, abs=2)
    assert bottom - top == pytest.approx(120, abs=2)


def test_undecodable_watermark_image_returns_original():
    background = Image.new("RGB", (100, 50), (10, 20, 30))
    geometry = RenderGeometry.compute((100, 50), (100, 50), (100, 50))
    assert render(background, image_spec(b"not an image"), geometry) is background
    assert render(background, image_spec(None), geometry) is background


def test_measure_watermark():
    spec = image_spec(png_bytes((200, 80)), scale=0.25)
    assert measure_watermark(spec) == pytest.approx((50, 20))
    assert measure_watermark(spec, scale=2) == pytest.approx((100, 40))

    text = measure_watermark(text_spec())
    assert text.width > 0 and text.height > 0
    assert measure_watermark(image_spec(b"junk")) == (0, 0)


def test_output_encodes(tmp_path):
    geometry = RenderGeometry.compute((320, 240), (320, 240), (320, 240))
    out = render(Image.new("RGB", (320, 240), "gray"), text_spec(), geometry)
    buffer = io.BytesIO()
    out.save(buffer, "PNG")
    assert Image.open(io.BytesIO(buffer.getvalue())).size == (320, 240)
