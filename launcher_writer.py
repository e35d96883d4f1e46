"""
启动脚本生成模块
生成双击即可运行的 .bat 文件：切换原生/游戏分辨率、修复 NV_Modes。
"""

import logging
import os
import subprocess
from typing import List, Sequence

logger = logging.getLogger(__name__)

LAUNCHERS = (
    ("Native.bat", "native"),
    ("Game.bat", "game"),
    ("FixNVModes.bat", "fix-nvmodes"),
)


def render_launcher(command: Sequence[str], sub_command: str) -> str:
    line = subprocess.list2cmdline([*command, sub_command])
    return "\r\n".join(["@echo off", line, "exit /b %ERRORLEVEL%", ""])


def write_launchers(target_dir: str, command: Sequence[str]) -> List[str]:
    """在 target_dir 下写入全部启动脚本，返回文件路径列表。"""
    os.makedirs(target_dir, exist_ok=True)
    written: List[str] = []
    for file_name, sub_command in LAUNCHERS:
        path = os.path.join(target_dir, file_name)
        with open(path, "w", encoding="utf-8", newline="") as fp:
            fp.write(render_launcher(command, sub_command))
        written.append(path)
        logger.info("已生成启动脚本: %s", path)
    return written
