"""
NV_Modes 注册表修改模块
枚举显示适配器类下的四位数字子键，为每个带 NV_Modes 的键补充自定义分辨率。
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

from errors import DriverStateError, RegistryAccessError
from nv_modes import (
    STRING_VALUE_TYPES,
    ModeEntry,
    decode_value,
    encode_value,
    merge_resolution,
    parse_mode_list,
)

try:
    import winreg
except ImportError:
    winreg = None

logger = logging.getLogger(__name__)

DISPLAY_CLASS_PATH = r"SYSTEM\CurrentControlSet\Control\Class\{4d36e968-e325-11ce-bfc1-08002be10318}"
VALUE_NAME = "NV_Modes"

_ADAPTER_KEY_PATTERN = re.compile(r"^\d{4}$")


@dataclass
class ApplyResult:
    examined: int = 0
    updated: int = 0
    unchanged: int = 0

    def __str__(self) -> str:
        return f"检查 {self.examined} 个键，更新 {self.updated} 个，已存在 {self.unchanged} 个"


class WinRegAdapterStore:
    """基于 winreg 的适配器键读写，仅访问显示适配器类路径下的子键。"""

    def __init__(self, class_path: str = DISPLAY_CLASS_PATH) -> None:
        if winreg is None:
            raise RegistryAccessError("当前系统不支持 Windows 注册表")
        self.class_path = class_path

    def _subkey_path(self, key_name: str) -> str:
        return f"{self.class_path}\\{key_name}"

    def iter_adapter_keys(self) -> Iterator[str]:
        try:
            root = winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self.class_path)
        except OSError as exc:
            raise RegistryAccessError(f"无法打开显示适配器类路径: {self.class_path} ({exc})") from exc

        with root:
            index = 0
            while True:
                try:
                    name = winreg.EnumKey(root, index)
                except OSError:
                    break
                index += 1
                if _ADAPTER_KEY_PATTERN.match(name):
                    yield name

    def read_modes(self, key_name: str) -> Optional[Tuple[object, int]]:
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, self._subkey_path(key_name)) as key:
                value, value_type = winreg.QueryValueEx(key, VALUE_NAME)
        except FileNotFoundError:
            return None
        except PermissionError:
            # 部分子键 (如 Properties) 普通权限不可读，视为不适用
            logger.debug("无权读取: %s", key_name)
            return None
        return value, value_type

    def write_modes(self, key_name: str, raw, value_type: int) -> None:
        path = self._subkey_path(key_name)
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, path, 0, winreg.KEY_SET_VALUE) as key:
                winreg.SetValueEx(key, VALUE_NAME, 0, value_type, raw)
        except OSError as exc:
            raise RegistryAccessError(f"写入 {VALUE_NAME} 失败: {path} ({exc})") from exc


def _read_applicable(store, key_name: str) -> Optional[Tuple[object, int]]:
    found = store.read_modes(key_name)
    if found is None:
        return None
    raw, value_type = found
    if value_type not in STRING_VALUE_TYPES:
        logger.warning("%s\\%s 类型异常 (%s)，已跳过", key_name, VALUE_NAME, value_type)
        return None
    return raw, value_type


def apply_resolution(width: int, height: int, store) -> ApplyResult:
    """
    为所有带 NV_Modes 的适配器键追加 ``宽x高`` 条目。

    已包含该分辨率 (任意色深) 的键不会被写入。若没有任何键带有 NV_Modes，
    抛出 DriverStateError，通常意味着未安装 NVIDIA 驱动。
    """
    result = ApplyResult()

    for key_name in store.iter_adapter_keys():
        found = _read_applicable(store, key_name)
        if found is None:
            logger.debug("%s 无 %s，跳过", key_name, VALUE_NAME)
            continue

        raw, value_type = found
        result.examined += 1
        current = decode_value(raw)
        merged, changed = merge_resolution(current, width, height)

        if not changed:
            result.unchanged += 1
            logger.info("%s 已包含 %dx%d，无需修改", key_name, width, height)
            continue

        store.write_modes(key_name, encode_value(merged, value_type), value_type)
        result.updated += 1
        logger.info("%s 已写入 %dx%d: %s", key_name, width, height, merged)

    if result.examined == 0:
        raise DriverStateError(f"未找到任何包含 {VALUE_NAME} 的显卡注册表键，请确认已安装 NVIDIA 驱动")

    logger.info("NV_Modes 处理完成: %s", result)
    return result


def list_custom_modes(store) -> Dict[str, List[Union[ModeEntry, str]]]:
    """读取每个适配器键当前的模式列表 (只读)。"""
    modes: Dict[str, List[Union[ModeEntry, str]]] = {}
    for key_name in store.iter_adapter_keys():
        found = _read_applicable(store, key_name)
        if found is None:
            continue
        modes[key_name] = parse_mode_list(decode_value(found[0]))
    return modes
