# photomark/config.py
import os
from pathlib import Path

# 应用数据目录，可通过 PHOTOMARK_HOME 环境变量覆盖
APP_DIR = Path(os.environ.get("PHOTOMARK_HOME", Path.home() / ".photomark"))
TEMPLATES_FILE = APP_DIR / "templates.json"

SUPPORTED_EXTS = {'.jpg', '.jpeg', '.png', '.bmp', '.tif', '.tiff', '.heic'}

# 九宫格定位时距图片边缘的留白（预览坐标单位），预览与导出共用
ANCHOR_MARGIN = 10

# 阴影参数（预览坐标单位，渲染时乘以缩放系数）
SHADOW_COLOR = (0, 0, 0)
SHADOW_ALPHA = 0.6
SHADOW_OFFSET = (2, 2)
SHADOW_BLUR = 4

# 导出默认值
DEFAULT_JPEG_QUALITY = 0.8
DEFAULT_PREFIX = "wm_"
DEFAULT_SUFFIX = "_watermarked"
DEFAULT_VIEWPORT = (1000, 700)
