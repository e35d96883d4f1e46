"""
配置管理模块
负责解析/保存 config.ini，提供原生/游戏两套分辨率配置及外部工具路径。
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from typing import List, Tuple

from errors import ConfigError
from registry_mutator import DISPLAY_CLASS_PATH

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.ini")

PROFILE_NAMES = ("native", "game")


@dataclass
class Resolution:
    """分辨率参数"""

    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass
class Profile:
    name: str
    resolution: Resolution
    bit_depth: int

    def __str__(self) -> str:
        return f"{self.name} {self.resolution} {self.bit_depth}bit"


@dataclass
class AppConfig:
    """应用全局配置"""

    native_resolution: Resolution
    game_resolution: Resolution
    bit_depth: int = 32
    secondary_displays: List[str] = field(default_factory=list)
    toggle_secondary_displays: bool = False
    display_tool_path: str = "nircmd.exe"
    display_class_path: str = DISPLAY_CLASS_PATH
    web_host: str = "127.0.0.1"
    web_port: int = 8766

    def profile(self, name: str) -> Profile:
        key = (name or "").strip().lower()
        if key == "native":
            return Profile("native", self.native_resolution, self.bit_depth)
        if key == "game":
            return Profile("game", self.game_resolution, self.bit_depth)
        raise ConfigError(f"未知的分辨率配置: '{name}'，可选: {', '.join(PROFILE_NAMES)}")


def _default_config() -> AppConfig:
    return AppConfig(
        native_resolution=Resolution(1920, 1080),
        game_resolution=Resolution(1566, 1080),
    )


def parse_resolution(res_str: str) -> Tuple[int, int]:
    """
    解析 '1920 * 1080' 或 '1920x1080' 格式的分辨率字符串。
    返回 (width, height)。
    """
    for sep in ("*", "x", "X"):
        if sep in res_str:
            parts = res_str.split(sep)
            if len(parts) == 2:
                try:
                    return int(parts[0].strip()), int(parts[1].strip())
                except ValueError:
                    break
    raise ConfigError(f"无法解析分辨率字符串: '{res_str}'")


def _parse_bool(value: str, fallback: bool) -> bool:
    if value is None:
        return fallback
    text = value.strip().lower()
    if text in ("1", "true", "yes", "y", "on"):
        return True
    if text in ("0", "false", "no", "n", "off"):
        return False
    return fallback


def parse_display_list(text: str) -> List[str]:
    """解析逗号或空白分隔的显示器编号列表，保持顺序。"""
    items = (text or "").replace(",", " ").split()
    return [item.strip() for item in items if item.strip()]


def load_config(path: str = None) -> AppConfig:
    """加载并解析配置文件。文件不存在时使用默认配置，内容错误时抛出 ConfigError。"""
    if path is None:
        path = DEFAULT_CONFIG_PATH

    cfg = _default_config()
    if not os.path.isfile(path):
        logger.warning("配置文件不存在: %s，使用默认配置", path)
        return cfg

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding="utf-8")

        native_w, native_h = parse_resolution(
            parser.get("Native", "Resolution", fallback=f"{cfg.native_resolution.width}*{cfg.native_resolution.height}")
        )
        game_w, game_h = parse_resolution(
            parser.get("Game", "Resolution", fallback=f"{cfg.game_resolution.width}*{cfg.game_resolution.height}")
        )
        cfg.native_resolution = Resolution(native_w, native_h)
        cfg.game_resolution = Resolution(game_w, game_h)

        cfg.bit_depth = parser.getint("Display", "BitDepth", fallback=cfg.bit_depth)
        cfg.secondary_displays = parse_display_list(parser.get("Display", "SecondaryDisplays", fallback=""))
        cfg.toggle_secondary_displays = _parse_bool(
            parser.get("Display", "ToggleSecondaryDisplays", fallback=None),
            cfg.toggle_secondary_displays,
        )

        cfg.display_tool_path = parser.get("Tools", "DisplayToolPath", fallback=cfg.display_tool_path).strip()
        cfg.display_class_path = parser.get(
            "Registry",
            "DisplayClassPath",
            fallback=cfg.display_class_path,
        ).strip()

        cfg.web_host = parser.get("Web", "Host", fallback=cfg.web_host).strip()
        cfg.web_port = parser.getint("Web", "Port", fallback=cfg.web_port)

    except (ValueError, configparser.Error) as exc:
        raise ConfigError(f"配置解析失败: {path} ({exc})") from exc

    if not os.path.isabs(cfg.display_tool_path) and os.path.dirname(cfg.display_tool_path):
        cfg.display_tool_path = os.path.join(os.path.dirname(os.path.abspath(path)), cfg.display_tool_path)

    logger.info("配置加载成功: %s", cfg)
    return cfg


def save_config(config: AppConfig, path: str = None) -> None:
    """保存配置到 ini 文件。"""
    if path is None:
        path = DEFAULT_CONFIG_PATH

    parser = configparser.ConfigParser(interpolation=None)
    # 保留键名大小写
    parser.optionxform = str

    parser["Native"] = {
        "Resolution": f"{config.native_resolution.width} * {config.native_resolution.height}",
    }
    parser["Game"] = {
        "Resolution": f"{config.game_resolution.width} * {config.game_resolution.height}",
    }
    parser["Display"] = {
        "BitDepth": str(config.bit_depth),
        "SecondaryDisplays": ", ".join(config.secondary_displays),
        "ToggleSecondaryDisplays": str(config.toggle_secondary_displays).lower(),
    }
    parser["Tools"] = {
        "DisplayToolPath": config.display_tool_path,
    }
    parser["Registry"] = {
        "DisplayClassPath": config.display_class_path,
    }
    parser["Web"] = {
        "Host": config.web_host,
        "Port": str(config.web_port),
    }

    with open(path, "w", encoding="utf-8") as fp:
        parser.write(fp)

    logger.info("配置已保存: %s", path)
