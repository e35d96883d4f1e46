"""
分辨率控制模块
通过外部显示工具 (默认 nircmd.exe) 的 setdisplay 命令切换分辨率、开关副显示器；
当前分辨率通过 Windows API (EnumDisplaySettingsW) 读取。
"""

import ctypes
import ctypes.wintypes
import logging
import os
import shutil
import subprocess
from typing import List, Tuple

from config_manager import Resolution
from errors import ExternalToolError, ToolNotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_WIDTH, MAX_WIDTH = 640, 16384
MIN_HEIGHT, MAX_HEIGHT = 480, 16384
MIN_BIT_DEPTH, MAX_BIT_DEPTH = 16, 64

ENUM_CURRENT_SETTINGS = -1


class DEVMODEW(ctypes.Structure):
    _fields_ = [
        ("dmDeviceName", ctypes.c_wchar * 32),
        ("dmSpecVersion", ctypes.wintypes.WORD),
        ("dmDriverVersion", ctypes.wintypes.WORD),
        ("dmSize", ctypes.wintypes.WORD),
        ("dmDriverExtra", ctypes.wintypes.WORD),
        ("dmFields", ctypes.wintypes.DWORD),
        ("_padding1", ctypes.c_byte * 16),
        ("dmColor", ctypes.c_short),
        ("dmDuplex", ctypes.c_short),
        ("dmYResolution", ctypes.c_short),
        ("dmTTOption", ctypes.c_short),
        ("dmCollate", ctypes.c_short),
        ("dmFormName", ctypes.c_wchar * 32),
        ("dmLogPixels", ctypes.wintypes.WORD),
        ("dmBitsPerPel", ctypes.wintypes.DWORD),
        ("dmPelsWidth", ctypes.wintypes.DWORD),
        ("dmPelsHeight", ctypes.wintypes.DWORD),
        ("dmDisplayFlags", ctypes.wintypes.DWORD),
        ("dmDisplayFrequency", ctypes.wintypes.DWORD),
    ]


def _get_current_settings() -> DEVMODEW:
    dm = DEVMODEW()
    dm.dmSize = ctypes.sizeof(DEVMODEW)
    ctypes.windll.user32.EnumDisplaySettingsW(None, ENUM_CURRENT_SETTINGS, ctypes.byref(dm))
    return dm


def get_current_resolution_info() -> Tuple[int, int, int]:
    """返回 (宽, 高, 色深)。"""
    dm = _get_current_settings()
    return dm.dmPelsWidth, dm.dmPelsHeight, dm.dmBitsPerPel


def get_current_resolution() -> str:
    try:
        w, h, depth = get_current_resolution_info()
    except (AttributeError, OSError):
        return "未知"
    return f"{w}x{h} {depth}bit"


def validate_profile(resolution: Resolution, bit_depth: int) -> None:
    if not MIN_WIDTH <= resolution.width <= MAX_WIDTH:
        raise ValidationError(f"宽度 {resolution.width} 超出范围 [{MIN_WIDTH}, {MAX_WIDTH}]")
    if not MIN_HEIGHT <= resolution.height <= MAX_HEIGHT:
        raise ValidationError(f"高度 {resolution.height} 超出范围 [{MIN_HEIGHT}, {MAX_HEIGHT}]")
    if not MIN_BIT_DEPTH <= bit_depth <= MAX_BIT_DEPTH:
        raise ValidationError(f"色深 {bit_depth} 超出范围 [{MIN_BIT_DEPTH}, {MAX_BIT_DEPTH}]")


class DisplayTool:
    """外部显示工具封装，每次调用都同步等待进程退出。"""

    def __init__(self, tool_path: str) -> None:
        self.tool_path = tool_path

    def ensure_available(self) -> str:
        if self.tool_path and os.path.isfile(self.tool_path):
            return self.tool_path
        resolved = shutil.which(self.tool_path) if self.tool_path else None
        if resolved is None:
            raise ToolNotFoundError(self.tool_path or "<未配置>")
        return resolved

    def _run(self, args: List[str]) -> None:
        executable = self.ensure_available()
        cmd = [executable, *args]
        logger.info("执行: %s", subprocess.list2cmdline(cmd))
        try:
            completed = subprocess.run(cmd, check=False)
        except FileNotFoundError as exc:
            raise ToolNotFoundError(executable) from exc
        except OSError as exc:
            raise ExternalToolError(f"无法启动外部工具: {executable} ({exc})", -1) from exc

        if completed.returncode != 0:
            raise ExternalToolError(
                f"外部工具执行失败: {' '.join(args)} (退出码: {completed.returncode})",
                completed.returncode,
            )

    def set_display(self, resolution: Resolution, bit_depth: int) -> None:
        validate_profile(resolution, bit_depth)
        self._run(["setdisplay", str(resolution.width), str(resolution.height), str(bit_depth)])
        logger.info("分辨率已切换: %s %dbit", resolution, bit_depth)

    def toggle_monitor(self, monitor_id: str) -> None:
        self._run(["setdisplay", f"monitor:{monitor_id}", "0", "0", "0"])
        logger.info("已切换显示器: %s", monitor_id)
