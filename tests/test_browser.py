import asyncio
import base64
import json
from pathlib import Path

import pytest

from o2reportgen.browser import DEFAULT_ARGS, Browser, CdpError, build_chrome_args
from o2reportgen.config import BrowserConfig

LOAD_EVENT = {"method": "Page.loadEventFired", "sessionId": "S1", "params": {}}


class FakeSocket:
    """Answers DevTools commands from a table."""

    def __init__(self, handlers=None, errors=None, events=None):
        self.handlers = {
            "Target.createTarget": {"targetId": "T1"},
            "Target.attachToTarget": {"sessionId": "S1"},
            "Page.getFrameTree": {"frameTree": {"frame": {"id": "F1"}}},
            "Page.navigate": {"frameId": "F1", "loaderId": "L1"},
            "DOM.getDocument": {"root": {"nodeId": 1}},
            "DOM.querySelector": {"nodeId": 7},
        }
        self.handlers.update(handlers or {})
        self.errors = errors or {}
        self.events = {"Page.navigate": [LOAD_EVENT]}
        if events is not None:
            self.events = events
        self.sent = []
        self.queue = asyncio.Queue()

    async def send(self, raw):
        message = json.loads(raw)
        self.sent.append(message)
        method = message["method"]
        if method in self.errors:
            reply = {"id": message["id"], "error": self.errors[method]}
        else:
            reply = {"id": message["id"], "result": self.handlers.get(method, {})}
        await self.queue.put(json.dumps(reply))
        for event in self.events.get(method, []):
            await self.queue.put(json.dumps(event))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self):
        await self.queue.put(None)

    def calls(self, method):
        return [m["params"] for m in self.sent if m["method"] == method]


def make_config(**overrides):
    values = dict(executable=Path("/usr/bin/chrome"), window_width=800, window_height=600)
    values.update(overrides)
    return BrowserConfig(**values)


def test_args_headless_defaults():
    args = build_chrome_args(make_config(), 9222)
    assert "--remote-debugging-port=9222" in args
    assert "--headless" in args
    assert "--window-size=800,600" in args
    assert "--disable-extensions" in args
    assert "--no-sandbox" not in args


def test_args_with_head_no_sandbox_and_extras():
    config = make_config(headless=False, no_sandbox=True, args=("--foo", "", "--bar=1"))
    args = build_chrome_args(config, 0)
    assert "--headless" not in args
    assert "--no-sandbox" in args
    assert args[-2:] == ["--foo", "--bar=1"]


def test_args_disable_defaults():
    with_defaults = build_chrome_args(make_config(), 0)
    args = build_chrome_args(make_config(disable_default_args=True), 0)
    assert "--disable-extensions" in with_defaults
    assert "--disable-extensions" not in args
    assert "--remote-debugging-port=0" in args
    assert [arg for arg in args if arg in DEFAULT_ARGS] == []


@pytest.mark.asyncio
async def test_new_page_and_find_element():
    socket = FakeSocket()
    browser = Browser(socket, config=make_config())
    page = await browser.new_page("http://localhost:5080/web/login")
    element = await page.find_element("input[type='email']")
    assert element.node_id == 7
    assert socket.calls("DOM.querySelector")[-1]["selector"] == "input[type='email']"
    assert socket.calls("Page.navigate")[-1]["url"] == "http://localhost:5080/web/login"
    assert socket.calls("Emulation.setDeviceMetricsOverride")[0]["width"] == 800
    await browser.close()


@pytest.mark.asyncio
async def test_find_element_missing():
    socket = FakeSocket(handlers={"DOM.querySelector": {"nodeId": 0}})
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    with pytest.raises(CdpError, match="main"):
        await page.find_element("main")
    await browser.close()


@pytest.mark.asyncio
async def test_error_response_raises():
    socket = FakeSocket(errors={"Log.disable": {"code": -32000, "message": "boom"}})
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    with pytest.raises(CdpError, match="boom") as info:
        await page.disable_log()
    assert info.value.code == -32000
    await browser.close()


@pytest.mark.asyncio
async def test_pdf_and_screenshot_decode():
    pdf_bytes = b"%PDF-1.4 body"
    png_bytes = b"\x89PNG\r\n\x1a\n"
    socket = FakeSocket(
        handlers={
            "Page.printToPDF": {"data": base64.b64encode(pdf_bytes).decode()},
            "Page.captureScreenshot": {"data": base64.b64encode(png_bytes).decode()},
        }
    )
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    assert await page.pdf(landscape=True) == pdf_bytes
    assert socket.calls("Page.printToPDF")[0]["landscape"] is True
    assert await page.screenshot() == png_bytes
    await browser.close()


@pytest.mark.asyncio
async def test_goto_error_text():
    socket = FakeSocket()
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    socket.handlers["Page.navigate"] = {"frameId": "F1", "errorText": "net::ERR_NAME_NOT_RESOLVED"}
    with pytest.raises(CdpError, match="ERR_NAME_NOT_RESOLVED"):
        await page.goto("http://nowhere.example.com")
    await browser.close()


@pytest.mark.asyncio
async def test_url_from_target_info():
    socket = FakeSocket(
        handlers={"Target.getTargetInfo": {"targetInfo": {"url": "http://localhost:5080/web/"}}}
    )
    browser = Browser(socket)
    page = await browser.new_page("http://localhost:5080/web/")
    assert await page.url() == "http://localhost:5080/web/"
    assert socket.calls("Target.getTargetInfo")[0]["targetId"] == "T1"
    await browser.close()


@pytest.mark.asyncio
async def test_navigation_timeout():
    socket = FakeSocket(events={})
    browser = Browser(socket, navigation_timeout=0.05)
    with pytest.raises(CdpError, match="navigation"):
        await browser.new_page("about:blank")
    await browser.close()


@pytest.mark.asyncio
async def test_type_and_press_enter():
    socket = FakeSocket()
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    element = await page.find_element("input")
    await (await element.type_str("abc")).press_key("Enter")
    key_downs = [p for p in socket.calls("Input.dispatchKeyEvent") if p["type"] == "keyDown"]
    assert "".join(p["text"] for p in key_downs[:3]) == "abc"
    assert key_downs[-1]["key"] == "Enter"
    assert key_downs[-1]["windowsVirtualKeyCode"] == 13
    with pytest.raises(CdpError):
        await element.press_key("NoSuchKey")
    await browser.close()


@pytest.mark.asyncio
async def test_click_inside_quad():
    socket = FakeSocket(handlers={"DOM.getContentQuads": {"quads": [[0, 0, 10, 0, 10, 20, 0, 20]]}})
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    element = await page.find_element("button")
    assert await element.click() is element
    pressed = [p for p in socket.calls("Input.dispatchMouseEvent") if p["type"] == "mousePressed"]
    assert len(pressed) == 1
    assert 0 < pressed[0]["x"] < 10 and 0 < pressed[0]["y"] < 20
    await browser.close()


@pytest.mark.asyncio
async def test_click_without_quads():
    socket = FakeSocket(handlers={"DOM.getContentQuads": {"quads": []}})
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    element = await page.find_element("button")
    with pytest.raises(CdpError):
        await element.click()
    await browser.close()


@pytest.mark.asyncio
async def test_close_sends_browser_close_and_ends_connection():
    socket = FakeSocket()
    browser = Browser(socket)
    page = await browser.new_page("about:blank")
    await browser.close()
    assert socket.sent[-1]["method"] == "Browser.close"
    with pytest.raises(CdpError):
        await page.find_element("main")
    await browser.kill()