"""
NVIDIA 自定义分辨率切换工具主程序
- native / game: 切换到原生或游戏分辨率（可同时开关副显示器）
- fix-nvmodes: 将游戏分辨率写入 NV_Modes（自动请求管理员权限）
- set-game WxH: 修改游戏分辨率并立即修复 NV_Modes
- status / make-launchers / --config-ui
"""

import datetime
import logging
import os
import shutil
import signal
import sys
import threading
import time
import webbrowser
from typing import List, Optional, Tuple

from config_manager import DEFAULT_CONFIG_PATH, load_config, parse_resolution
from errors import SwitcherError
from launcher_writer import write_launchers
from nv_modes import ModeEntry
from orchestrator import ELEVATED_FLAG, ProfileOrchestrator
from privilege_broker import ShellPrivilegeBroker, build_self_command
from registry_mutator import WinRegAdapterStore, list_custom_modes
from resolution_controller import get_current_resolution
from web_config_server import WebConfigServer

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
LOGS_DIR = os.path.join(BASE_DIR, "Logs")

EXIT_OK = 0
EXIT_FAILURE = 1

KNOWN_FLAGS = {ELEVATED_FLAG, "--config-ui", "--open-browser"}

USAGE = """用法: main.py [--config <路径>] <命令>

命令:
  native              切换到原生分辨率
  game                切换到游戏分辨率
  fix-nvmodes         将游戏分辨率写入 NV_Modes（需要管理员权限）
  set-game <宽>x<高>  修改游戏分辨率并修复 NV_Modes
  status              显示当前分辨率与 NV_Modes 内容
  make-launchers      生成 .bat 启动脚本
  --config-ui         启动网页配置页（可加 --open-browser）
"""

logger = logging.getLogger("main")


def _create_log_dir() -> str:
    now = datetime.datetime.now()
    date_dir = now.strftime("%Y-%m-%d")
    time_dir = now.strftime("%H-%M-%S")
    log_folder = os.path.join(LOGS_DIR, date_dir, time_dir)
    os.makedirs(log_folder, exist_ok=True)
    return os.path.join(log_folder, "log.txt")


def _cleanup_old_logs(max_age_days: int = 2) -> None:
    if not os.path.isdir(LOGS_DIR):
        return

    today = datetime.date.today()
    for entry in os.listdir(LOGS_DIR):
        entry_path = os.path.join(LOGS_DIR, entry)
        if not os.path.isdir(entry_path):
            continue
        try:
            folder_date = datetime.datetime.strptime(entry, "%Y-%m-%d").date()
        except ValueError:
            continue

        age = (today - folder_date).days
        if age > max_age_days:
            try:
                shutil.rmtree(entry_path)
                print(f"[清理] 已删除过期日志目录: {entry_path} (已过 {age} 天)")
            except OSError as exc:
                print(f"[清理] 删除失败: {entry_path} - {exc}")


def _setup_logging() -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    try:
        handlers.append(logging.FileHandler(_create_log_dir(), encoding="utf-8"))
    except OSError as exc:
        print(f"[日志] 无法创建日志文件，仅输出到控制台: {exc}")

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


def _open_browser_async(url: str, delay_seconds: float = 0.8) -> None:
    def _worker() -> None:
        time.sleep(delay_seconds)
        try:
            webbrowser.open(url, new=2)
            logger.info("已尝试打开浏览器: %s", url)
        except webbrowser.Error as exc:
            logger.warning("自动打开浏览器失败: %s", exc)

    threading.Thread(target=_worker, name="BrowserAutoOpen", daemon=True).start()


_stop_event = threading.Event()


def _register_shutdown_hooks(web_server: WebConfigServer) -> None:
    def _shutdown(*_args):
        _stop_event.set()
        web_server.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)


def _split_args(argv: List[str]) -> Tuple[Optional[str], List[str]]:
    """取出 --config <路径>，返回 (配置路径, 其余参数)。"""
    config_path = None
    rest: List[str] = []
    it = iter(argv)
    for arg in it:
        if arg == "--config":
            config_path = next(it, None)
            if not config_path:
                raise SwitcherError("--config 缺少路径参数")
        elif arg.startswith("--config="):
            config_path = arg.split("=", 1)[1]
        else:
            rest.append(arg)
    return config_path, rest


def _print_status(orchestrator: ProfileOrchestrator) -> None:
    config = orchestrator.config
    logger.info("当前分辨率: %s", get_current_resolution())
    logger.info("  原生配置: %s", config.profile("native"))
    logger.info("  游戏配置: %s", config.profile("game"))
    logger.info("  副显示器: %s", ", ".join(config.secondary_displays) or "无")

    store = orchestrator.store_factory(config.display_class_path)
    modes = list_custom_modes(store)
    if not modes:
        logger.warning("未找到任何包含 NV_Modes 的显卡注册表键")
    game = config.game_resolution
    for key_name, tokens in modes.items():
        entries = [t for t in tokens if isinstance(t, ModeEntry)]
        present = any(e.width == game.width and e.height == game.height for e in entries)
        logger.info(
            "  %s: %d 个自定义分辨率，游戏分辨率%s",
            key_name,
            len(entries),
            "已存在" if present else "缺失",
        )


def _run_config_ui(orchestrator: ProfileOrchestrator, config_path: str, open_browser: bool) -> None:
    app_state = {
        "config": orchestrator.config,
        "config_path": config_path,
        "orchestrator": orchestrator,
    }
    config = orchestrator.config
    web_server = WebConfigServer(config.web_host, config.web_port, app_state)
    web_server.start()
    _register_shutdown_hooks(web_server)
    if open_browser:
        _open_browser_async(web_server.url)

    logger.info("已进入配置界面模式，按 Ctrl+C 退出")
    try:
        while not _stop_event.is_set():
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("收到 Ctrl+C，配置界面模式退出")
    finally:
        web_server.stop()


def run(argv: List[str], broker=None, store_factory=None) -> int:
    config_path, args = _split_args(argv)
    config_path = os.path.abspath(config_path or DEFAULT_CONFIG_PATH)
    flags = {a for a in args if a.startswith("--")}
    positional = [a for a in args if not a.startswith("--")]

    unknown = sorted(flags - KNOWN_FLAGS)
    if unknown:
        raise SwitcherError(f"未知参数: {', '.join(unknown)}")

    if not positional and "--config-ui" not in flags:
        print(USAGE)
        return EXIT_FAILURE

    config = load_config(config_path)
    orchestrator = ProfileOrchestrator(
        config,
        broker or ShellPrivilegeBroker(),
        store_factory=store_factory,
        config_path=config_path,
    )

    if "--config-ui" in flags:
        _run_config_ui(orchestrator, config_path, "--open-browser" in flags)
        return EXIT_OK

    command = positional[0].lower()
    if command in ("native", "game"):
        orchestrator.switch(command)
    elif command == "fix-nvmodes":
        result = orchestrator.apply_nv_modes_fix(in_elevated_child=ELEVATED_FLAG in flags)
        if result is not None:
            logger.info("NV_Modes 修复完成: %s", result)
    elif command == "set-game":
        if len(positional) < 2:
            raise SwitcherError("set-game 需要分辨率参数，例如: set-game 1566x1080")
        width, height = parse_resolution(positional[1])
        orchestrator.set_game_resolution(width, height)
    elif command == "status":
        _print_status(orchestrator)
    elif command == "make-launchers":
        write_launchers(BASE_DIR, build_self_command(["--config", config_path]))
    else:
        print(USAGE)
        raise SwitcherError(f"未知命令: {command}")

    return EXIT_OK


def main() -> None:
    _cleanup_old_logs(max_age_days=2)
    _setup_logging()

    try:
        code = run(sys.argv[1:])
    except SwitcherError as exc:
        logger.error("%s", exc)
        code = EXIT_FAILURE
    except Exception as exc:
        logger.error("未预期的异常: %s", exc, exc_info=True)
        code = EXIT_FAILURE

    sys.exit(code)


if __name__ == "__main__":
    main()
