"""
错误类型模块
所有可向用户报告的失败都继承 SwitcherError，主程序据此统一返回退出码 1。
"""


class SwitcherError(Exception):
    """可预期的失败，消息直接展示给用户。"""


class ConfigError(SwitcherError):
    """配置缺失或格式错误。"""


class ValidationError(SwitcherError):
    """分辨率参数超出允许范围。"""


class ToolNotFoundError(SwitcherError):
    def __init__(self, path: str) -> None:
        super().__init__(f"找不到外部工具: {path}")
        self.path = path


class ElevationError(SwitcherError):
    """无法获得管理员权限。"""


class ElevationDeclinedError(ElevationError):
    """用户拒绝了 UAC 提权提示。"""


class DriverStateError(SwitcherError):
    """注册表中没有任何显卡键包含 NV_Modes。"""


class RegistryAccessError(SwitcherError):
    """读写注册表失败。"""


class ExternalToolError(SwitcherError):
    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code
