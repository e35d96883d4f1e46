"""
分辨率配置编排模块
把 "切换到某套分辨率" 与 "修复 NV_Modes" 翻译成有序的外部调用：
需要管理员权限的注册表修改通过 PrivilegeBroker 提权执行，
分辨率切换与副显示器开关以普通权限直接调用外部工具。
"""

import logging
from typing import Callable, List, Optional, Sequence

from config_manager import AppConfig, Profile, Resolution, save_config
from errors import ElevationError, ExternalToolError, SwitcherError
from privilege_broker import PrivilegeBroker, build_self_command
from registry_mutator import ApplyResult, WinRegAdapterStore, apply_resolution
from resolution_controller import DisplayTool, validate_profile

logger = logging.getLogger(__name__)

FIX_COMMAND = "fix-nvmodes"
ELEVATED_FLAG = "--elevated"


class ProfileOrchestrator:
    def __init__(
        self,
        config: AppConfig,
        broker: PrivilegeBroker,
        display: Optional[DisplayTool] = None,
        store_factory: Optional[Callable[[str], object]] = None,
        relaunch_command: Optional[Sequence[str]] = None,
        config_path: Optional[str] = None,
    ) -> None:
        self.config = config
        self.broker = broker
        self.display = display or DisplayTool(config.display_tool_path)
        self.store_factory = store_factory or WinRegAdapterStore
        self.config_path = config_path
        if relaunch_command is None:
            args = [FIX_COMMAND, ELEVATED_FLAG]
            if config_path:
                args += ["--config", config_path]
            relaunch_command = build_self_command(args)
        self.relaunch_command = list(relaunch_command)

    def apply(self, profile: Profile) -> None:
        """切换到指定分辨率配置；参数非法时不会启动任何外部进程。"""
        logger.info("正在切换到 %s", profile)
        self.display.set_display(profile.resolution, profile.bit_depth)

    def apply_mode_with_secondary_displays(self, profile: Profile, display_ids: Sequence[str]) -> None:
        """
        依次开关副显示器后切换分辨率。

        每个显示器独立执行，单个失败不影响其余显示器和分辨率切换；
        全部完成后若有失败则汇总抛出 ExternalToolError。
        """
        validate_profile(profile.resolution, profile.bit_depth)
        self.display.ensure_available()

        failures: List[str] = []
        first_code = 0
        for display_id in display_ids:
            try:
                self.display.toggle_monitor(display_id)
            except ExternalToolError as exc:
                logger.error("显示器 %s 切换失败: %s", display_id, exc)
                failures.append(f"monitor:{display_id} (退出码 {exc.exit_code})")
                first_code = first_code or exc.exit_code

        try:
            self.apply(profile)
        except SwitcherError as exc:
            if not failures:
                raise
            raise ExternalToolError(
                f"分辨率切换失败: {exc}；部分显示器切换失败: {', '.join(failures)}",
                getattr(exc, "exit_code", first_code),
            ) from exc

        if failures:
            raise ExternalToolError(f"部分显示器切换失败: {', '.join(failures)}", first_code)

    def switch(self, name: str) -> None:
        profile = self.config.profile(name)
        displays = self.config.secondary_displays
        if self.config.toggle_secondary_displays and displays:
            self.apply_mode_with_secondary_displays(profile, displays)
        else:
            self.apply(profile)

    def apply_nv_modes_fix(self, in_elevated_child: bool = False) -> Optional[ApplyResult]:
        """
        把游戏分辨率写入所有显卡键的 NV_Modes。

        已是管理员时直接在本进程执行并返回统计结果；否则以管理员身份
        重新启动本程序执行同一操作，等待结束后返回 None。
        """
        game = self.config.game_resolution
        validate_profile(game, self.config.bit_depth)

        if self.broker.is_elevated():
            logger.info("已具有管理员权限，直接修改 NV_Modes: %s", game)
            store = self.store_factory(self.config.display_class_path)
            return apply_resolution(game.width, game.height, store)

        if in_elevated_child:
            raise ElevationError("提权后的进程仍不具有管理员权限，已放弃")

        logger.info("需要管理员权限，正在提权执行 NV_Modes 修复")
        exit_code = self.broker.run_elevated(self.relaunch_command)
        if exit_code != 0:
            raise ExternalToolError(f"NV_Modes 修复失败 (提权进程退出码: {exit_code})", exit_code)
        logger.info("提权进程已完成 NV_Modes 修复")
        return None

    def set_game_resolution(self, width: int, height: int) -> Optional[ApplyResult]:
        """更新游戏分辨率并保存配置，随后立即修复 NV_Modes。"""
        resolution = Resolution(width, height)
        validate_profile(resolution, self.config.bit_depth)
        self.config.game_resolution = resolution
        try:
            save_config(self.config, self.config_path)
        except OSError as exc:
            raise SwitcherError(f"配置保存失败: {exc}") from exc
        return self.apply_nv_modes_fix()
