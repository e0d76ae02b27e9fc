"""A small DevTools-protocol client for driving a headless Chrome."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import itertools
import json
import logging
import re
import tempfile
from collections.abc import Callable
from typing import Any

import websockets

from o2reportgen.config import BrowserConfig

log = logging.getLogger(__name__)

DEFAULT_ARGS = (
    "--disable-background-networking",
    "--enable-features=NetworkService,NetworkServiceInProcess",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-component-extensions-with-background-pages",
    "--disable-default-apps",
    "--disable-dev-shm-usage",
    "--disable-extensions",
    "--disable-features=TranslateUI",
    "--disable-hang-monitor",
    "--disable-ipc-flooding-protection",
    "--disable-popup-blocking",
    "--disable-prompt-on-repost",
    "--disable-renderer-backgrounding",
    "--disable-sync",
    "--force-color-profile=srgb",
    "--metrics-recording-only",
    "--no-first-run",
    "--enable-automation",
    "--password-store=basic",
    "--use-mock-keychain",
    "--enable-blink-features=IdleDetection",
    "--lang=en_US",
)

_REQUEST_TIMEOUT = 30.0
_LAUNCH_TIMEOUT = 20.0
_WS_URL = re.compile(r"DevTools listening on (ws://\S+)")

# key name -> (virtual key code, code, text)
_KEYS = {
    "Enter": (13, "Enter", "\r"),
    "Tab": (9, "Tab", ""),
    "Escape": (27, "Escape", ""),
    "Backspace": (8, "Backspace", ""),
}


class CdpError(Exception):
    """A DevTools command failed or the browser could not be reached."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


def build_chrome_args(config: BrowserConfig, port: int) -> list[str]:
    """Command-line arguments for Chrome, without the executable itself."""
    args = [] if config.disable_default_args else list(DEFAULT_ARGS)
    args.append(f"--remote-debugging-port={port}")
    args.append(f"--window-size={config.window_width},{config.window_height}")
    if config.headless:
        args.extend(("--headless", "--hide-scrollbars", "--mute-audio"))
    if config.no_sandbox:
        args.extend(("--no-sandbox", "--disable-setuid-sandbox"))
    args.extend(arg for arg in config.args if arg)
    return args


class _Connection:
    """Request/response and event dispatch over one DevTools socket."""

    def __init__(self, socket: Any) -> None:
        self._socket = socket
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._listeners: list[Callable[[dict[str, Any]], None]] = []
        self._closed = False
        self._reader = asyncio.get_running_loop().create_task(self._read())

    def add_listener(self, listener: Callable[[dict[str, Any]], None]) -> None:
        self._listeners.append(listener)

    async def _read(self) -> None:
        try:
            async for raw in self._socket:
                message = json.loads(raw)
                if "id" in message:
                    self._resolve(message)
                else:
                    for listener in list(self._listeners):
                        listener(message)
        except Exception as exc:  # the socket went away
            log.debug("devtools connection ended: %s", exc)
        finally:
            self._closed = True
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(CdpError("connection to the browser closed"))
            self._pending.clear()

    def _resolve(self, message: dict[str, Any]) -> None:
        future = self._pending.pop(message["id"], None)
        if future is None or future.done():
            return
        error = message.get("error")
        if error is not None:
            future.set_exception(
                CdpError(f"{error.get('message', 'unknown error')} ({error.get('code')})",
                         error.get("code"))
            )
        else:
            future.set_result(message.get("result", {}))

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        session_id: str | None = None,
        timeout: float = _REQUEST_TIMEOUT,
    ) -> dict[str, Any]:
        if self._closed:
            raise CdpError("connection to the browser closed")
        request_id = next(self._ids)
        message: dict[str, Any] = {"id": request_id, "method": method, "params": params or {}}
        if session_id is not None:
            message["sessionId"] = session_id
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._socket.send(json.dumps(message))
        except Exception as exc:
            self._pending.pop(request_id, None)
            raise CdpError(f"could not send {method}: {exc}") from exc
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            self._pending.pop(request_id, None)
            raise CdpError(f"request {method} timed out") from None

    async def close(self) -> None:
        if not self._closed:
            with contextlib.suppress(Exception):
                await self._socket.close()
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._reader, 5.0)
        if not self._reader.done():
            self._reader.cancel()


class Element:
    """A DOM node found on a page."""

    def __init__(self, page: Page, node_id: int) -> None:
        self.page = page
        self.node_id = node_id

    async def click(self) -> Element:
        """Scroll the element into view and click its centre."""
        await self.page._send("DOM.scrollIntoViewIfNeeded", {"nodeId": self.node_id})
        result = await self.page._send("DOM.getContentQuads", {"nodeId": self.node_id})
        quads = result.get("quads") or []
        if not quads:
            raise CdpError("element has no visible area to click")
        quad = quads[0]
        x = sum(quad[0::2]) / 4
        y = sum(quad[1::2]) / 4
        await self.page._send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": x, "y": y})
        for kind in ("mousePressed", "mouseReleased"):
            await self.page._send(
                "Input.dispatchMouseEvent",
                {"type": kind, "x": x, "y": y, "button": "left", "clickCount": 1},
            )
        return self

    async def type_str(self, text: str) -> Element:
        """Type ``text`` into the focused element, one key at a time."""
        for char in text:
            await self.page._send("Input.dispatchKeyEvent", {"type": "keyDown", "key": char, "text": char})
            await self.page._send("Input.dispatchKeyEvent", {"type": "keyUp", "key": char})
        return self

    async def press_key(self, key: str) -> Element:
        """Press and release a named key such as ``Enter``, or a single character."""
        if key in _KEYS:
            key_code, code, text = _KEYS[key]
            down: dict[str, Any] = {
                "type": "keyDown",
                "key": key,
                "code": code,
                "windowsVirtualKeyCode": key_code,
                "nativeVirtualKeyCode": key_code,
            }
            if text:
                down["text"] = text
            up = {"type": "keyUp", "key": key, "code": code,
                  "windowsVirtualKeyCode": key_code, "nativeVirtualKeyCode": key_code}
        elif len(key) == 1:
            down = {"type": "keyDown", "key": key, "text": key}
            up = {"type": "keyUp", "key": key}
        else:
            raise CdpError(f"unknown key: {key}")
        await self.page._send("Input.dispatchKeyEvent", down)
        await self.page._send("Input.dispatchKeyEvent", up)
        return self


class Page:
    """One browser tab attached through a flat DevTools session."""

    def __init__(
        self,
        connection: _Connection,
        target_id: str,
        session_id: str,
        navigation_timeout: float = _REQUEST_TIMEOUT,
    ) -> None:
        self._connection = connection
        self.target_id = target_id
        self.session_id = session_id
        self._navigation_timeout = navigation_timeout
        self._frame_id: str | None = None
        self._loaded = asyncio.Event()
        self._loaded.set()
        connection.add_listener(self._on_event)

    def _on_event(self, message: dict[str, Any]) -> None:
        if message.get("sessionId") != self.session_id:
            return
        method = message.get("method")
        params = message.get("params") or {}
        if method == "Page.frameStartedLoading" and params.get("frameId") == self._frame_id:
            self._loaded.clear()
        elif method == "Page.loadEventFired":
            self._loaded.set()

    async def _send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._connection.send(method, params, session_id=self.session_id)

    async def _enable(self) -> None:
        await self._send("Page.enable")
        tree = await self._send("Page.getFrameTree")
        self._frame_id = tree.get("frameTree", {}).get("frame", {}).get("id")

    async def disable_log(self) -> Page:
        await self._send("Log.disable")
        return self

    async def find_element(self, selector: str) -> Element:
        """The first element matching the CSS ``selector``."""
        document = await self._send("DOM.getDocument", {"depth": 0})
        root_id = document["root"]["nodeId"]
        found = await self._send("DOM.querySelector", {"nodeId": root_id, "selector": selector})
        node_id = found.get("nodeId", 0)
        if not node_id:
            raise CdpError(f"no element matches selector {selector!r}")
        return Element(self, node_id)

    async def goto(self, url: str) -> Page:
        """Navigate to ``url`` and wait for the page to load."""
        self._loaded.clear()
        result = await self._send("Page.navigate", {"url": url})
        error_text = result.get("errorText")
        if error_text:
            self._loaded.set()
            raise CdpError(f"navigation to {url} failed: {error_text}")
        if "loaderId" not in result:
            self._loaded.set()
        return await self.wait_for_navigation()

    async def url(self) -> str:
        result = await self._connection.send("Target.getTargetInfo", {"targetId": self.target_id})
        return result["targetInfo"]["url"]

    async def wait_for_navigation(self) -> Page:
        """Wait until a navigation in progress has fired its load event."""
        try:
            await asyncio.wait_for(self._loaded.wait(), self._navigation_timeout)
        except asyncio.TimeoutError:
            raise CdpError("timed out waiting for navigation") from None
        return self

    async def pdf(self, landscape: bool = False) -> bytes:
        result = await self._send("Page.printToPDF", {"landscape": landscape})
        return base64.b64decode(result["data"])

    async def screenshot(self) -> bytes:
        result = await self._send("Page.captureScreenshot", {"format": "png"})
        return base64.b64decode(result["data"])


async def _wait_for_ws_url(stream: asyncio.StreamReader, timeout: float) -> str:
    async def scan() -> str:
        while True:
            line = await stream.readline()
            if not line:
                raise CdpError("browser exited before opening its DevTools endpoint")
            match = _WS_URL.search(line.decode(errors="replace"))
            if match:
                return match.group(1)

    try:
        return await asyncio.wait_for(scan(), timeout)
    except asyncio.TimeoutError:
        raise CdpError("timed out waiting for the browser to start") from None


async def _drain(stream: asyncio.StreamReader) -> None:
    while await stream.readline():
        pass


class Browser:
    """A running Chrome instance and its DevTools connection."""

    def __init__(
        self,
        socket: Any,
        process: asyncio.subprocess.Process | None = None,
        user_data_dir: tempfile.TemporaryDirectory[str] | None = None,
        config: BrowserConfig | None = None,
        navigation_timeout: float = _REQUEST_TIMEOUT,
    ) -> None:
        self._connection = _Connection(socket)
        self._process = process
        self._user_data_dir = user_data_dir
        self._config = config
        self._navigation_timeout = navigation_timeout
        self._drain_task: asyncio.Task[None] | None = None

    @classmethod
    async def launch(cls, config: BrowserConfig) -> Browser:
        """Start Chrome with ``config`` and connect to it."""
        user_data_dir = tempfile.TemporaryDirectory(
            prefix="o2reportgen-chrome-", ignore_cleanup_errors=True
        )
        command = [
            str(config.executable),
            *build_chrome_args(config, 0),
            f"--user-data-dir={user_data_dir.name}",
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            user_data_dir.cleanup()
            raise CdpError(f"could not start browser {config.executable}: {exc}") from exc
        assert process.stderr is not None
        try:
            ws_url = await _wait_for_ws_url(process.stderr, _LAUNCH_TIMEOUT)
            socket = await websockets.connect(ws_url, max_size=None)
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            user_data_dir.cleanup()
            raise
        browser = cls(socket, process, user_data_dir, config)
        browser._drain_task = asyncio.get_running_loop().create_task(_drain(process.stderr))
        return browser

    async def new_page(self, url: str) -> Page:
        """Open a new tab and navigate it to ``url``."""
        created = await self._connection.send("Target.createTarget", {"url": "about:blank"})
        target_id = created["targetId"]
        attached = await self._connection.send(
            "Target.attachToTarget", {"targetId": target_id, "flatten": True}
        )
        page = Page(self._connection, target_id, attached["sessionId"], self._navigation_timeout)
        await page._enable()
        if self._config is not None:
            await page._send(
                "Emulation.setDeviceMetricsOverride",
                {
                    "width": self._config.window_width,
                    "height": self._config.window_height,
                    "deviceScaleFactor": self._config.device_scale_factor,
                    "mobile": False,
                },
            )
        await page.goto(url)
        return page

    async def close(self) -> None:
        """Ask the browser to close and wait for it to exit."""
        with contextlib.suppress(CdpError):
            await self._connection.send("Browser.close")
        await self._connection.close()
        if self._process is not None:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._process.wait(), 10.0)

    async def kill(self) -> None:
        """Kill the browser process if still running and remove its profile."""
        if self._process is not None and self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
            await self._process.wait()
        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None
        if self._user_data_dir is not None:
            self._user_data_dir.cleanup()
            self._user_data_dir = None