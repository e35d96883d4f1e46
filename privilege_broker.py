"""
提权模块
判断当前进程是否具有管理员权限，并以 UAC "runas" 方式重新启动自身、
等待其结束并取得退出码。
"""

import ctypes
import ctypes.wintypes
import logging
import os
import subprocess
import sys
from typing import List, Sequence

from errors import ElevationDeclinedError, ElevationError, ToolNotFoundError

logger = logging.getLogger(__name__)

SEE_MASK_NOCLOSEPROCESS = 0x00000040
SEE_MASK_NOASYNC = 0x00000100
SW_SHOWNORMAL = 1
INFINITE = 0xFFFFFFFF
WAIT_FAILED = 0xFFFFFFFF
ERROR_FILE_NOT_FOUND = 2
ERROR_CANCELLED = 1223

MAIN_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "main.py")


class SHELLEXECUTEINFOW(ctypes.Structure):
    _fields_ = [
        ("cbSize", ctypes.wintypes.DWORD),
        ("fMask", ctypes.c_ulong),
        ("hwnd", ctypes.wintypes.HWND),
        ("lpVerb", ctypes.wintypes.LPCWSTR),
        ("lpFile", ctypes.wintypes.LPCWSTR),
        ("lpParameters", ctypes.wintypes.LPCWSTR),
        ("lpDirectory", ctypes.wintypes.LPCWSTR),
        ("nShow", ctypes.c_int),
        ("hInstApp", ctypes.wintypes.HINSTANCE),
        ("lpIDList", ctypes.c_void_p),
        ("lpClass", ctypes.wintypes.LPCWSTR),
        ("hkeyClass", ctypes.wintypes.HKEY),
        ("dwHotKey", ctypes.wintypes.DWORD),
        ("hIconOrMonitor", ctypes.wintypes.HANDLE),
        ("hProcess", ctypes.wintypes.HANDLE),
    ]


def build_self_command(args: Sequence[str]) -> List[str]:
    """构造重新启动本程序的命令行。打包后的 exe 直接调用自身。"""
    if getattr(sys, "frozen", False):
        return [sys.executable, *args]
    return [sys.executable, MAIN_SCRIPT, *args]


def _load_libraries():
    shell32 = ctypes.WinDLL("shell32", use_last_error=True)
    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

    shell32.ShellExecuteExW.argtypes = [ctypes.POINTER(SHELLEXECUTEINFOW)]
    shell32.ShellExecuteExW.restype = ctypes.wintypes.BOOL
    kernel32.WaitForSingleObject.argtypes = [ctypes.wintypes.HANDLE, ctypes.wintypes.DWORD]
    kernel32.WaitForSingleObject.restype = ctypes.wintypes.DWORD
    kernel32.GetExitCodeProcess.argtypes = [ctypes.wintypes.HANDLE, ctypes.POINTER(ctypes.wintypes.DWORD)]
    kernel32.GetExitCodeProcess.restype = ctypes.wintypes.BOOL
    kernel32.CloseHandle.argtypes = [ctypes.wintypes.HANDLE]
    return shell32, kernel32


class PrivilegeBroker:
    """提权能力接口，编排层只依赖这两个方法。"""

    def is_elevated(self) -> bool:
        raise NotImplementedError

    def run_elevated(self, command: Sequence[str]) -> int:
        """以管理员身份运行命令，阻塞至结束，返回子进程退出码。"""
        raise NotImplementedError


class ShellPrivilegeBroker(PrivilegeBroker):
    def is_elevated(self) -> bool:
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError) as exc:
            logger.warning("无法判断管理员权限: %s", exc)
            return False

    def run_elevated(self, command: Sequence[str]) -> int:
        if not command:
            raise ValueError("command 不能为空")

        try:
            shell32, kernel32 = _load_libraries()
        except (AttributeError, OSError) as exc:
            raise ElevationError("当前系统不支持 UAC 提权") from exc

        info = SHELLEXECUTEINFOW()
        info.cbSize = ctypes.sizeof(SHELLEXECUTEINFOW)
        info.fMask = SEE_MASK_NOCLOSEPROCESS | SEE_MASK_NOASYNC
        info.lpVerb = "runas"
        info.lpFile = command[0]
        info.lpParameters = subprocess.list2cmdline(list(command[1:]))
        info.lpDirectory = os.getcwd()
        info.nShow = SW_SHOWNORMAL

        logger.info("请求管理员权限运行: %s", subprocess.list2cmdline(list(command)))
        if not shell32.ShellExecuteExW(ctypes.byref(info)):
            error = ctypes.get_last_error()
            if error == ERROR_CANCELLED:
                raise ElevationDeclinedError("用户取消了管理员权限请求")
            if error == ERROR_FILE_NOT_FOUND:
                raise ToolNotFoundError(command[0])
            raise ElevationError(f"以管理员身份启动失败 (错误码: {error})")

        if not info.hProcess:
            raise ElevationError("未能获取提权进程句柄")

        try:
            if kernel32.WaitForSingleObject(info.hProcess, INFINITE) == WAIT_FAILED:
                raise ElevationError(f"等待提权进程失败 (错误码: {ctypes.get_last_error()})")
            exit_code = ctypes.wintypes.DWORD()
            if not kernel32.GetExitCodeProcess(info.hProcess, ctypes.byref(exit_code)):
                raise ElevationError(f"读取提权进程退出码失败 (错误码: {ctypes.get_last_error()})")
        finally:
            kernel32.CloseHandle(info.hProcess)

        logger.info("提权进程已结束，退出码: %d", exit_code.value)
        return exit_code.value
