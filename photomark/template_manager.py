# photomark/template_manager.py
import json
import logging
from pathlib import Path

from photomark.config import TEMPLATES_FILE
from photomark.errors import WatermarkError
from photomark.settings import WatermarkSpec

logger = logging.getLogger(__name__)


class TemplateManager:
    """
    水印模板管理

    模板与"上次使用的设置"保存在同一个 JSON 文件中:
        {"templates": [...], "last_used": {...}}
    模板按 id 区分，同 id 再次保存会覆盖原模板，列表保持保存顺序。
    """

    def __init__(self, path=None):
        self.path = Path(path) if path else TEMPLATES_FILE
        self.templates = []
        self.last_used = None
        self.load_templates()

    def load_templates(self):
        """加载模板文件"""
        if not self.path.exists():
            self.templates = []
            self.last_used = None
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.templates = [WatermarkSpec.from_dict(t) for t in data.get("templates", [])]
            last = data.get("last_used")
            self.last_used = WatermarkSpec.from_dict(last) if last else None
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise WatermarkError(f"模板文件已损坏: {self.path} ({e})") from e
        logger.debug("已加载 %d 个模板: %s", len(self.templates), self.path)

    def save_templates(self):
        """保存模板文件"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "templates": [t.to_dict() for t in self.templates],
            "last_used": self.last_used.to_dict() if self.last_used else None,
        }
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def save(self, spec):
        """保存模板，已存在同 id 的模板时更新"""
        for i, t in enumerate(self.templates):
            if t.id == spec.id:
                self.templates[i] = spec
                break
        else:
            self.templates.append(spec)
        self.save_templates()

    def list(self):
        """返回 [(id, name), ...]"""
        return [(t.id, t.name) for t in self.templates]

    def load(self, template_id):
        """按 id 加载模板，不存在时返回 None"""
        for t in self.templates:
            if t.id == template_id:
                return t
        return None

    def find(self, key):
        """按 id 或名称查找模板（名称重复时取第一个）"""
        spec = self.load(key)
        if spec is not None:
            return spec
        for t in self.templates:
            if t.name == key:
                return t
        return None

    def delete(self, template_id):
        """删除模板，返回是否删除成功"""
        remaining = [t for t in self.templates if t.id != template_id]
        if len(remaining) == len(self.templates):
            return False
        self.templates = remaining
        self.save_templates()
        return True

    def save_last_used(self, spec):
        self.last_used = spec
        self.save_templates()

    def load_last_used(self):
        return self.last_used


class WatermarkSession:
    """
    编辑会话的生命周期钩子

    宿主程序在切到后台/退出时调用 on_suspend() 保存当前设置，
    重新启动时调用 on_resume() 恢复。
    """

    def __init__(self, manager):
        self.manager = manager

    def on_suspend(self, spec):
        self.manager.save_last_used(spec)

    def on_resume(self):
        return self.manager.load_last_used()
