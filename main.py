# -*- coding: utf-8 -*-
"""
图片水印工具命令行入口
功能:为图片批量添加文字/图片水印，管理水印模板
"""

# 标准库导入
import argparse
import logging
import sys
from dataclasses import replace
from importlib.metadata import version
from pathlib import Path

# 第三方库导入
from tqdm import tqdm

# 本地模块导入
from photomark.anchor import Alignment, snap_to
from photomark.batch_worker import ExportJob, NamingMode, NamingRule, ScaleMode, ScalePolicy, run_export, summary_text
from photomark.config import DEFAULT_JPEG_QUALITY, DEFAULT_PREFIX, DEFAULT_SUFFIX, DEFAULT_VIEWPORT
from photomark.errors import ExportItemError, WatermarkError
from photomark.exporter import OutputFormat
from photomark.geometry import Offset
from photomark.image_io import collect_sources, decode_image
from photomark.settings import WatermarkKind, WatermarkSpec
from photomark.template_manager import TemplateManager, WatermarkSession

logger = logging.getLogger("photomark")


def get_version():
    try:
        return version("photomark")
    except Exception:
        return "unknown"


def parse_size(value):
    """'1000x700' -> (1000, 700)"""
    try:
        w, h = value.lower().split("x")
        return (float(w), float(h))
    except ValueError:
        raise argparse.ArgumentTypeError(f"尺寸格式应为 宽x高，例如 1000x700: {value}")


def parse_offset(value):
    """'12,-30' -> Offset(12, -30)"""
    try:
        x, y = value.split(",")
        return Offset(float(x), float(y))
    except ValueError:
        raise argparse.ArgumentTypeError(f"偏移格式应为 x,y: {value}")


def parse_quality(value):
    """JPEG 质量 0..1"""
    try:
        quality = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"无效的质量: {value}")
    if not 0.0 <= quality <= 1.0:
        raise argparse.ArgumentTypeError(f"JPEG 质量必须在 0 到 1 之间: {value}")
    return quality


def parse_positive_int(value):
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"无效的整数: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"必须为正整数: {value}")
    return number


def parse_color(value):
    """'#RRGGBB' 或 '#RRGGBBAA' -> RGBA 浮点元组"""
    text = value.lstrip("#")
    if len(text) not in (6, 8):
        raise argparse.ArgumentTypeError(f"颜色格式应为 #RRGGBB 或 #RRGGBBAA: {value}")
    try:
        channels = [int(text[i:i + 2], 16) / 255 for i in range(0, len(text), 2)]
    except ValueError:
        raise argparse.ArgumentTypeError(f"无效的颜色: {value}")
    if len(channels) == 3:
        channels.append(1.0)
    return tuple(channels)


def add_watermark_args(parser):
    source = parser.add_argument_group("水印来源")
    source.add_argument("--template", help="使用已保存的模板（id 或名称）")
    source.add_argument("--last-used", action="store_true", help="使用上次导出时的水印设置")

    text = parser.add_argument_group("文字水印")
    text.add_argument("-t", "--text", help="水印文字")
    text.add_argument("--font", help="字体名称或字体文件路径 (.ttf/.otf)")
    text.add_argument("--font-size", type=float, help="字号（预览坐标单位）")
    text.add_argument("--bold", action="store_true", default=None, help="粗体")
    text.add_argument("--italic", action="store_true", default=None, help="斜体")
    text.add_argument("--color", type=parse_color, help="文字颜色 #RRGGBB[AA]")
    text.add_argument("--opacity", type=float, help="文字不透明度 0..1（描边共用）")
    text.add_argument("--stroke-color", type=parse_color, help="描边颜色，设置后启用描边")
    text.add_argument("--stroke-width", type=float, help="描边宽度，设置后启用描边")

    image = parser.add_argument_group("图片水印")
    image.add_argument("--image", help="水印图片路径，设置后使用图片水印")
    image.add_argument("--image-scale", type=float, help="水印图片缩放比例（相对原始尺寸）")
    image.add_argument("--image-opacity", type=float, help="水印图片不透明度 0..1")

    layout = parser.add_argument_group("位置")
    layout.add_argument("--rotation", type=float, help="旋转角度，顺时针为正")
    layout.add_argument("--offset", type=parse_offset, help="相对图片中心的偏移 x,y（预览坐标单位，y 向下）")
    layout.add_argument(
        "--position",
        choices=[a.name.lower() for a in Alignment],
        help="九宫格位置，按第一张图片计算偏移",
    )
    layout.add_argument(
        "--viewport", type=parse_size, default=DEFAULT_VIEWPORT,
        help=f"预览视口尺寸 宽x高 (默认: {DEFAULT_VIEWPORT[0]}x{DEFAULT_VIEWPORT[1]})",
    )


def get_arg():
    parser = argparse.ArgumentParser(description="为图片批量添加文字或图片水印。")
    parser.add_argument("-v", "--version", action="version", version=get_version())
    parser.add_argument("--templates-file", help="模板文件路径（默认: ~/.photomark/templates.json）")

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")

    # --- export ---
    export_parser = subparsers.add_parser("export", help="批量导出带水印的图片")
    export_parser.add_argument("inputs", nargs="+", help="图片文件或文件夹")
    export_parser.add_argument("-r", "--recursive", action="store_true", help="递归处理子文件夹")
    export_parser.add_argument("-o", "--output", required=True, help="输出文件夹")
    export_parser.add_argument(
        "-f", "--format", choices=["png", "jpeg"], default="png", help="输出格式 (默认: png)",
    )
    export_parser.add_argument(
        "--quality", type=parse_quality, default=DEFAULT_JPEG_QUALITY,
        help=f"JPEG 质量 0..1 (默认: {DEFAULT_JPEG_QUALITY})",
    )
    export_parser.add_argument(
        "--naming", choices=[m.value for m in NamingMode], default=NamingMode.ADD_SUFFIX.value,
        help="命名规则 (默认: add_suffix)",
    )
    export_parser.add_argument("--affix", help=f"前缀/后缀内容 (默认: {DEFAULT_PREFIX} / {DEFAULT_SUFFIX})")
    export_parser.add_argument(
        "--scale-mode", choices=[m.value for m in ScaleMode], default=ScaleMode.NONE.value,
        help="输出尺寸 (默认: none)",
    )
    export_parser.add_argument("--scale-value", type=parse_positive_int, default=100, help="宽度/高度像素或百分比")
    export_parser.add_argument("--save-template", metavar="NAME", help="导出前把当前设置保存为模板")
    export_parser.add_argument("--log-file", help="日志文件路径")
    export_parser.add_argument("--quiet", action="store_true", help="不显示进度")
    add_watermark_args(export_parser)

    # --- templates ---
    tpl_parser = subparsers.add_parser("templates", help="管理水印模板")
    tpl_sub = tpl_parser.add_subparsers(dest="action", metavar="<action>", required=True)
    tpl_sub.add_parser("list", help="列出所有模板")
    show = tpl_sub.add_parser("show", help="显示模板内容")
    show.add_argument("key", help="模板 id 或名称")
    delete = tpl_sub.add_parser("delete", help="删除模板")
    delete.add_argument("key", help="模板 id 或名称")

    return parser


def setup_logging(log_file=None, verbose=True):
    """控制台输出 INFO，日志文件记录 DEBUG"""
    root = logging.getLogger("photomark")
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(file_handler)


def build_spec(args, manager):
    """从模板/上次设置出发，再叠加命令行参数"""
    if args.template:
        spec = manager.find(args.template)
        if spec is None:
            raise WatermarkError(f"未找到模板 '{args.template}'")
    elif args.last_used:
        spec = manager.load_last_used() or WatermarkSpec()
    else:
        spec = WatermarkSpec()

    text_changes = {
        "text": args.text,
        "font_family": args.font,
        "font_size": args.font_size,
        "bold": args.bold,
        "italic": args.italic,
        "color": args.color,
        "opacity": args.opacity,
        "stroke_color": args.stroke_color,
        "stroke_width": args.stroke_width,
    }
    text_changes = {k: v for k, v in text_changes.items() if v is not None}
    if args.stroke_color is not None or args.stroke_width is not None:
        text_changes["stroke_enabled"] = True
    if text_changes:
        spec = replace(spec, text=replace(spec.text, **text_changes))
    if args.text is not None:
        spec = replace(spec, kind=WatermarkKind.TEXT)

    image_changes = {"scale": args.image_scale, "opacity": args.image_opacity}
    image_changes = {k: v for k, v in image_changes.items() if v is not None}
    if args.image:
        image_changes["data"] = Path(args.image).read_bytes()
        spec = replace(spec, kind=WatermarkKind.IMAGE)
    if image_changes:
        spec = replace(spec, image=replace(spec.image, **image_changes))

    if args.rotation is not None:
        spec = replace(spec, rotation=args.rotation)
    if args.offset is not None:
        spec = spec.with_offset(args.offset)
    return spec


def build_job(args, sources):
    if args.format == "jpeg":
        output_format = OutputFormat.jpeg(args.quality)
    else:
        output_format = OutputFormat.png()

    mode = NamingMode(args.naming)
    if mode is NamingMode.ADD_PREFIX:
        naming = NamingRule.add_prefix(args.affix if args.affix is not None else DEFAULT_PREFIX)
    elif mode is NamingMode.ADD_SUFFIX:
        naming = NamingRule.add_suffix(args.affix if args.affix is not None else DEFAULT_SUFFIX)
    else:
        naming = NamingRule.keep_original()

    return ExportJob(
        sources=sources,
        destination=args.output,
        scale=ScalePolicy(ScaleMode(args.scale_mode), args.scale_value),
        naming=naming,
        output_format=output_format,
    )


def first_decodable_size(sources):
    """九宫格定位参照第一张能解码的图片，损坏的图片留给导出任务记录"""
    for source in sources:
        try:
            return decode_image(source.read_bytes()).size
        except ExportItemError as e:
            logger.debug("定位参照跳过 %s: %s", source.name, e)
    return None


def run_export_command(args, manager):
    setup_logging(args.log_file, verbose=not args.quiet)

    sources = collect_sources(args.inputs, recursive=args.recursive)
    if not sources:
        logger.warning("没有找到支持的图片文件")
        return 1

    spec = build_spec(args, manager)
    if args.position:
        reference = first_decodable_size(sources)
        if reference is None:
            logger.warning("没有可以解码的图片，忽略 --position")
        else:
            spec = snap_to(spec, Alignment.from_name(args.position), reference, args.viewport)
    if args.save_template:
        spec = spec.renamed(args.save_template, new_id=True)
        manager.save(spec)
        logger.info("模板 '%s' 已保存 (%s)", spec.name, spec.id)

    job = build_job(args, sources)
    logger.info("共 %d 张图片，输出到 %s", len(sources), job.destination)

    with tqdm(total=len(sources), desc="导出", unit="张", disable=args.quiet) as pbar:
        results = run_export(
            job, spec, args.viewport,
            progress_callback=lambda idx, total, result: pbar.update(1),
        )

    WatermarkSession(manager).on_suspend(spec)
    print(f"{summary_text(results)} 张图片已成功保存到: {job.destination}")
    for r in results:
        if not r.ok:
            print(f"  ✗ {r.source.name} [{r.reason.value}] {r.message}", file=sys.stderr)
    return 0


def run_templates_command(args, manager):
    if args.action == "list":
        for template_id, name in manager.list():
            print(f"{template_id}  {name}")
        return 0

    spec = manager.find(args.key)
    if spec is None:
        print(f"未找到模板 '{args.key}'", file=sys.stderr)
        return 1
    if args.action == "show":
        data = spec.to_dict()
        if data["image"]["data"]:
            data["image"]["data"] = f"<{len(spec.image.data)} bytes>"
        for key, value in data.items():
            print(f"{key}: {value}")
        return 0

    manager.delete(spec.id)
    print(f"模板 '{spec.name}' 已删除")
    return 0


def main(argv=None):
    parser = get_arg()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help(sys.stderr)
        return 1

    handlers = {
        "export": run_export_command,
        "templates": run_templates_command,
    }

    try:
        manager = TemplateManager(args.templates_file)
        return handlers[args.command](args, manager)
    except (WatermarkError, OSError, ValueError) as e:
        print(f"Critical Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
