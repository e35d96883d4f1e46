"""
网页配置服务模块
提供一个轻量 Web UI，用于修改 config.ini 中的分辨率配置，
并可直接触发分辨率切换与 NV_Modes 修复。
"""

import dataclasses
import html
import logging
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs

from config_manager import AppConfig, Resolution, parse_display_list, save_config
from errors import SwitcherError
from resolution_controller import get_current_resolution, validate_profile

logger = logging.getLogger(__name__)

# 外部调用必须串行执行
_action_lock = threading.Lock()


class _ConfigHandler(BaseHTTPRequestHandler):
    app_state = None

    def _send_html(self, text: str, status: int = 200) -> None:
        data = text.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _render_form(self, message: str = "") -> str:
        config: AppConfig = self.app_state["config"]
        escaped_msg = html.escape(message)
        displays = html.escape(", ".join(config.secondary_displays))

        return f"""
<!DOCTYPE html>
<html lang="zh-CN">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>NVModesSwitcher 配置页</title>
  <style>
    * {{ box-sizing: border-box; }}
    body {{ margin: 0; font-family: "Segoe UI", "Microsoft YaHei", sans-serif; background: #f6f8fc; color: #1f2937; }}
    .content {{ padding: 24px; }}
    .panel {{ max-width: 900px; background: #fff; border: 1px solid #dbe3ef; border-radius: 12px; padding: 20px; box-shadow: 0 2px 8px rgba(30, 41, 59, 0.05); }}
    .msg {{ color: #0a7a2f; margin: 12px 0; min-height: 20px; }}
    .meta {{ color: #64748b; font-size: 12px; margin-bottom: 12px; }}
    .row {{ margin: 8px 0; }}
    label.input {{ display: inline-block; width: 220px; }}
    input[type=text], input[type=number] {{ width: 260px; padding: 6px; border: 1px solid #dbe3ef; border-radius: 6px; }}
    fieldset {{ margin-bottom: 14px; border: 1px solid #dbe3ef; border-radius: 8px; }}
    legend {{ color: #64748b; }}
    button {{ padding: 8px 16px; border: none; border-radius: 8px; background: #2563eb; color: #fff; cursor: pointer; }}
    form.inline {{ display: inline-block; margin-right: 8px; }}
    code {{ background: #f3f4f6; padding: 2px 4px; border-radius: 4px; }}
  </style>
</head>
<body>
  <main class="content">
    <section class="panel">
      <h2>分辨率配置</h2>
      <div class="meta">配置文件：<code>{html.escape(self.app_state['config_path'])}</code> ｜ 当前分辨率：{html.escape(get_current_resolution())}</div>
      <div class="msg">{escaped_msg}</div>
      <form method="post" action="/save">
        <fieldset>
          <legend>原生分辨率</legend>
          <div class="row"><label class="input">宽度</label><input type="number" name="native_width" value="{config.native_resolution.width}" /></div>
          <div class="row"><label class="input">高度</label><input type="number" name="native_height" value="{config.native_resolution.height}" /></div>
        </fieldset>

        <fieldset>
          <legend>游戏分辨率</legend>
          <div class="row"><label class="input">宽度</label><input type="number" name="game_width" value="{config.game_resolution.width}" /></div>
          <div class="row"><label class="input">高度</label><input type="number" name="game_height" value="{config.game_resolution.height}" /></div>
        </fieldset>

        <fieldset>
          <legend>显示设置</legend>
          <div class="row"><label class="input">色深</label><input type="number" name="bit_depth" value="{config.bit_depth}" /></div>
          <div class="row"><label class="input">副显示器编号（逗号分隔）</label><input type="text" name="secondary_displays" value="{displays}" /></div>
          <div class="row"><label class="input">切换时开关副显示器</label><input type="checkbox" name="toggle_secondary_displays" {'checked' if config.toggle_secondary_displays else ''} /></div>
          <div class="row"><label class="input">显示工具路径</label><input type="text" name="display_tool_path" value="{html.escape(config.display_tool_path)}" /></div>
        </fieldset>

        <button type="submit">保存配置</button>
      </form>

      <h2>操作</h2>
      <form class="inline" method="post" action="/apply"><input type="hidden" name="profile" value="native" /><button type="submit">切换到原生分辨率</button></form>
      <form class="inline" method="post" action="/apply"><input type="hidden" name="profile" value="game" /><button type="submit">切换到游戏分辨率</button></form>
      <form class="inline" method="post" action="/fix"><button type="submit">修复 NV_Modes</button></form>
    </section>
  </main>
</body>
</html>
"""

    def _parse_form(self):
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length).decode("utf-8", errors="replace")
        return parse_qs(body)

    def _save_core_config(self, form) -> str:
        cfg: AppConfig = self.app_state["config"]

        def _get(name: str, default: str = "") -> str:
            return form.get(name, [default])[0].strip()

        # 全部字段解析、校验并写盘成功后才替换内存中的配置
        native = Resolution(
            int(_get("native_width", str(cfg.native_resolution.width))),
            int(_get("native_height", str(cfg.native_resolution.height))),
        )
        game = Resolution(
            int(_get("game_width", str(cfg.game_resolution.width))),
            int(_get("game_height", str(cfg.game_resolution.height))),
        )
        bit_depth = int(_get("bit_depth", str(cfg.bit_depth)))
        validate_profile(native, bit_depth)
        validate_profile(game, bit_depth)

        updated = dataclasses.replace(
            cfg,
            native_resolution=native,
            game_resolution=game,
            bit_depth=bit_depth,
            secondary_displays=parse_display_list(_get("secondary_displays")),
            toggle_secondary_displays="toggle_secondary_displays" in form,
            display_tool_path=_get("display_tool_path", cfg.display_tool_path),
        )
        save_config(updated, self.app_state["config_path"])

        for field in dataclasses.fields(AppConfig):
            setattr(cfg, field.name, getattr(updated, field.name))
        self.app_state["orchestrator"].display.tool_path = cfg.display_tool_path
        return "保存成功：配置已写入 config.ini（游戏分辨率变更后请执行 NV_Modes 修复）"

    def _apply_profile(self, form) -> str:
        name = form.get("profile", [""])[0].strip()
        self.app_state["orchestrator"].switch(name)
        return f"已切换到 {name} 分辨率"

    def _fix_nv_modes(self) -> str:
        result = self.app_state["orchestrator"].apply_nv_modes_fix()
        if result is None:
            return "NV_Modes 修复完成（管理员进程）"
        return f"NV_Modes 修复完成：{result}"

    def do_GET(self):
        if self.path in ("/", "/index.html"):
            self._send_html(self._render_form())
            return
        self._send_html("<h1>404</h1>", status=HTTPStatus.NOT_FOUND)

    def do_POST(self):
        if self.path not in ("/save", "/apply", "/fix"):
            self._send_html("<h1>404</h1>", status=HTTPStatus.NOT_FOUND)
            return

        try:
            form = self._parse_form()

            with _action_lock:
                if self.path == "/save":
                    message = self._save_core_config(form)
                elif self.path == "/apply":
                    message = self._apply_profile(form)
                else:
                    message = self._fix_nv_modes()

            self._send_html(self._render_form(message))

        except (SwitcherError, ValueError, OSError) as exc:
            logger.error("网页提交处理失败: %s", exc, exc_info=True)
            self._send_html(self._render_form(f"操作失败: {exc}"), status=HTTPStatus.BAD_REQUEST)

    def log_message(self, fmt, *args):
        logger.info("[web] %s - %s", self.client_address[0], fmt % args)


class WebConfigServer:
    def __init__(self, host: str, port: int, app_state: dict) -> None:
        self.host = host
        self.port = port
        self.app_state = app_state
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        port = self._server.server_address[1] if self._server else self.port
        return f"http://{self.host}:{port}"

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return

        _ConfigHandler.app_state = self.app_state
        self._server = ThreadingHTTPServer((self.host, self.port), _ConfigHandler)

        def _serve() -> None:
            logger.info("网页配置服务启动: %s", self.url)
            self._server.serve_forever(poll_interval=0.5)

        self._thread = threading.Thread(target=_serve, name="WebConfigServer", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            logger.info("网页配置服务已停止")
        self._server = None
        self._thread = None
