"""
NV_Modes 编解码模块
负责 NVIDIA 驱动自定义模式字符串的格式化、解析与合并。

字符串由空白分隔的条目组成，标准条目形如 ``1920x1080x8,16,32,64=1F;``，
无法识别的条目必须原样保留。
"""

import re
from dataclasses import dataclass
from typing import List, Tuple, Union

REG_SZ = 1
REG_EXPAND_SZ = 2
REG_MULTI_SZ = 7

STRING_VALUE_TYPES = (REG_SZ, REG_EXPAND_SZ, REG_MULTI_SZ)

DEFAULT_DEPTHS = (8, 16, 32, 64)
MODE_FLAG = "1F"

_ENTRY_PATTERN = re.compile(r"^(\d+)x(\d+)x(\d+(?:,\d+)*)=([0-9A-Fa-f]+);$", re.IGNORECASE)


@dataclass(frozen=True)
class ModeEntry:
    width: int
    height: int
    depths: Tuple[int, ...] = DEFAULT_DEPTHS
    flag: str = MODE_FLAG

    def __str__(self) -> str:
        depth_text = ",".join(str(d) for d in self.depths)
        return f"{self.width}x{self.height}x{depth_text}={self.flag};"


def format_entry(width: int, height: int) -> str:
    return str(ModeEntry(width, height))


def decode_value(raw) -> str:
    """
    将注册表原始值规整为单一字符串。

    REG_MULTI_SZ 读取结果为字符串列表，按驱动的处理方式直接拼接，不加分隔符。
    """
    if raw is None:
        return ""
    if isinstance(raw, (list, tuple)):
        return "".join(str(part) for part in raw)
    return str(raw)


def encode_value(text: str, value_type: int):
    """按原值类型回写：多字符串类型写成单元素列表。"""
    if value_type == REG_MULTI_SZ:
        return [text]
    return text


def has_resolution(text: str, width: int, height: int) -> bool:
    # 只按 "宽x高x" 字面匹配，忽略色深与标志位
    needle = f"{int(width)}x{int(height)}x"
    return needle in text.lower()


def merge_resolution(text: str, width: int, height: int) -> Tuple[str, bool]:
    """
    确保模式字符串包含指定分辨率。

    Returns
    -------
    tuple
        (新字符串, 是否发生变化)。已存在时原样返回。
    """
    entry = format_entry(width, height)
    if not text or not text.strip():
        return entry, True
    if has_resolution(text, width, height):
        return text, False
    merged = f"{text.rstrip()} {entry}".strip()
    return merged, True


def parse_mode_list(text: str) -> List[Union[ModeEntry, str]]:
    """拆分模式字符串；可识别的条目转为 ModeEntry，其余保留原文。"""
    tokens: List[Union[ModeEntry, str]] = []
    for token in (text or "").split():
        match = _ENTRY_PATTERN.match(token)
        if not match:
            tokens.append(token)
            continue
        depths = tuple(int(d) for d in match.group(3).split(","))
        tokens.append(
            ModeEntry(
                width=int(match.group(1)),
                height=int(match.group(2)),
                depths=depths,
                flag=match.group(4).upper(),
            )
        )
    return tokens
