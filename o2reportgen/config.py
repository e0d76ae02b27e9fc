"""Environment-driven settings, browser launch options and the SMTP client."""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
import os
import shutil
import smtplib
import ssl
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from email.message import EmailMessage
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

log = logging.getLogger(__name__)

VERSION = "0.11.0"

_U16_MAX = 0xFFFF
_U32_MAX = 0xFFFF_FFFF
_U64_MAX = 0xFFFF_FFFF_FFFF_FFFF

_TRUE_WORDS = frozenset({"true", "1", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "off"})

_NO_VALUE = ""
_SMTP_CREDENTIAL_ENV = "ZO_SMTP_PASSWORD"
_REPORT_USER_CREDENTIAL_ENV = "ZO_REPORT_USER_PASSWORD"


def _env(name: str, default: Any, maximum: int | None = None) -> Any:
    """Declare a setting read from the environment variable ``name``."""
    return field(default=default, metadata={"env": name, "max": maximum})


def _parse_value(name: str, raw: str, default: Any, maximum: int | None) -> Any:
    if isinstance(default, bool):
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError(f"{name}: invalid boolean value {raw!r}")
    if isinstance(default, int):
        try:
            value = int(raw.strip())
        except ValueError:
            raise ValueError(f"{name}: invalid integer value {raw!r}") from None
        if value < 0 or (maximum is not None and value > maximum):
            raise ValueError(f"{name}: value {value} out of range")
        return value
    return raw


def _load_section(cls: type, environ: Mapping[str, str]) -> Any:
    values = {}
    for f in dataclasses.fields(cls):
        name = f.metadata["env"]
        raw = environ.get(name)
        if raw is None:
            values[f.name] = f.default
        else:
            values[f.name] = _parse_value(name, raw, f.default, f.metadata["max"])
    return cls(**values)


@dataclass(frozen=True)
class TokioConsole:
    tokio_console_server_addr: str = _env("ZO_TOKIO_CONSOLE_SERVER_ADDR", "0.0.0.0")
    tokio_console_server_port: int = _env("ZO_TOKIO_CONSOLE_SERVER_PORT", 6699, _U16_MAX)
    tokio_console_retention: int = _env("ZO_TOKIO_CONSOLE_RETENTION", 60, _U64_MAX)


@dataclass(frozen=True)
class Chrome:
    chrome_path: str = _env("ZO_CHROME_PATH", "")
    chrome_check_default: bool = _env("ZO_CHROME_CHECK_DEFAULT_PATH", True)
    chrome_download_path: str = _env("ZO_CHROME_DOWNLOAD_PATH", "./data/download")
    chrome_no_sandbox: bool = _env("ZO_CHROME_NO_SANDBOX", False)
    chrome_with_head: bool = _env("ZO_CHROME_WITH_HEAD", False)
    chrome_sleep_secs: int = _env("ZO_CHROME_SLEEP_SECS", 20, _U16_MAX)
    chrome_window_width: int = _env("ZO_CHROME_WINDOW_WIDTH", 1370, _U32_MAX)
    chrome_window_height: int = _env("ZO_CHROME_WINDOW_HEIGHT", 730, _U32_MAX)
    chrome_additional_args: str = _env("ZO_CHROME_ADDITIONAL_ARGS", "")
    chrome_disable_default_args: bool = _env("ZO_CHROME_DISABLE_DEFAULT_ARGS", False)


@dataclass(frozen=True)
class Smtp:
    smtp_host: str = _env("ZO_SMTP_HOST", "localhost")
    smtp_port: int = _env("ZO_SMTP_PORT", 25, _U16_MAX)
    smtp_username: str = _env("ZO_SMTP_USER_NAME", "")
    smtp_password: str = _env(_SMTP_CREDENTIAL_ENV, _NO_VALUE)
    smtp_reply_to: str = _env("ZO_SMTP_REPLY_TO", "")
    smtp_from_email: str = _env("ZO_SMTP_FROM_EMAIL", "")
    smtp_encryption: str = _env("ZO_SMTP_ENCRYPTION", "")


@dataclass(frozen=True)
class Auth:
    user_email: str = _env("ZO_REPORT_USER_EMAIL", "")
    user_password: str = _env(_REPORT_USER_CREDENTIAL_ENV, _NO_VALUE)


@dataclass(frozen=True)
class Http:
    port: int = _env("ZO_HTTP_PORT", 5090, _U16_MAX)
    addr: str = _env("ZO_HTTP_ADDR", "127.0.0.1")
    ipv6_enabled: bool = _env("ZO_HTTP_IPV6_ENABLED", False)


@dataclass(frozen=True)
class Grpc:
    port: int = _env("ZO_GRPC_PORT", 5081, _U16_MAX)
    addr: str = _env("ZO_GRPC_ADDR", "")
    internal_grpc_token: str = _env("ZO_INTERNAL_GRPC_TOKEN", _NO_VALUE)
    # Maximum gRPC message size in MB.
    max_message_size: int = _env("ZO_GRPC_MAX_MESSAGE_SIZE", 16, _U64_MAX)


@dataclass(frozen=True)
class Common:
    app_name: str = _env("ZO_APP_NAME", "openobserve_report_generator")
    o2_web_uri: str = _env("ZO_O2_APP_URL", "http://localhost:5080/web")
    local_mode: bool = _env("ZO_LOCAL_MODE", True)


@dataclass(frozen=True)
class Config:
    auth: Auth
    http: Http
    grpc: Grpc
    common: Common
    smtp: Smtp
    chrome: Chrome
    tokio_console: TokioConsole

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> Config:
        """Build the configuration from a mapping of environment variables."""
        return cls(
            **{f.name: _load_section(_SECTIONS[f.name], environ)
               for f in dataclasses.fields(cls)}
        )


_SECTIONS: dict[str, type] = {
    "auth": Auth,
    "http": Http,
    "grpc": Grpc,
    "common": Common,
    "smtp": Smtp,
    "chrome": Chrome,
    "tokio_console": TokioConsole,
}


def init(environ: Mapping[str, str] | None = None) -> Config:
    """Load settings; with no mapping given, read ``.env`` and the process environment."""
    if environ is None:
        load_dotenv()
        environ = os.environ
    return Config.from_env(environ)


@functools.lru_cache(maxsize=None)
def get_config() -> Config:
    """The process-wide configuration, loaded on first use."""
    return init()


@dataclass(frozen=True)
class BrowserConfig:
    """Everything needed to launch a Chrome instance."""

    executable: Path
    window_width: int
    window_height: int
    device_scale_factor: float = 1.0
    headless: bool = True
    no_sandbox: bool = False
    disable_default_args: bool = False
    args: tuple[str, ...] = ()


_CHROME_NAMES = (
    "google-chrome-stable",
    "google-chrome-beta",
    "google-chrome",
    "chromium",
    "chromium-browser",
    "chrome",
    "chrome-browser",
    "msedge",
    "microsoft-edge",
    "microsoft-edge-stable",
)

_DOWNLOADED_NAMES = frozenset(
    {
        "chrome",
        "chrome.exe",
        "chromium",
        "Chromium",
        "headless_shell",
        "Google Chrome for Testing",
    }
)


def _platform_paths() -> list[Path]:
    if sys.platform == "darwin":
        return [
            Path("/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
            Path("/Applications/Chromium.app/Contents/MacOS/Chromium"),
            Path("/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge"),
        ]
    if sys.platform.startswith("win"):
        bases = [
            os.environ.get(var)
            for var in ("PROGRAMFILES", "PROGRAMFILES(X86)", "LOCALAPPDATA")
        ]
        suffixes = [
            Path("Google/Chrome/Application/chrome.exe"),
            Path("Chromium/Application/chrome.exe"),
            Path("Microsoft/Edge/Application/msedge.exe"),
        ]
        return [Path(base) / suffix for base in bases if base for suffix in suffixes]
    return []


def find_chrome_executable() -> Path | None:
    """Look for Chrome in the CHROME variable, the PATH and the usual install places."""
    from_env = os.environ.get("CHROME")
    if from_env and Path(from_env).is_file():
        return Path(from_env)
    for name in _CHROME_NAMES:
        found = shutil.which(name)
        if found:
            return Path(found)
    return next((path for path in _platform_paths() if path.is_file()), None)


def _locate_downloaded_chrome(download_path: Path) -> Path | None:
    for candidate in sorted(download_path.rglob("*")):
        if (
            candidate.name in _DOWNLOADED_NAMES
            and candidate.is_file()
            and os.access(candidate, os.X_OK)
        ):
            return candidate
    return None


def build_browser_config(config: Config) -> BrowserConfig:
    """Work out the browser launch options from the Chrome settings."""
    chrome = config.chrome
    args: tuple[str, ...] = ()
    if chrome.chrome_additional_args:
        args = tuple(chrome.chrome_additional_args.split(","))

    if chrome.chrome_path:
        executable = Path(chrome.chrome_path)
    else:
        found = find_chrome_executable() if chrome.chrome_check_default else None
        if found is not None:
            executable = found
        else:
            download_path = Path(chrome.chrome_download_path)
            log.info("fetching chrome at: %s", download_path)
            download_path.mkdir(parents=True, exist_ok=True)
            located = _locate_downloaded_chrome(download_path)
            if located is None:
                raise RuntimeError(
                    f"chrome could not be downloaded: no chrome executable in {download_path}"
                )
            log.info("chrome fetched at path %s", located)
            executable = located

    return BrowserConfig(
        executable=executable,
        window_width=chrome.chrome_window_width,
        window_height=chrome.chrome_window_height,
        device_scale_factor=1.0,
        headless=not chrome.chrome_with_head,
        no_sandbox=chrome.chrome_no_sandbox,
        disable_default_args=chrome.chrome_disable_default_args,
        args=args,
    )


@functools.lru_cache(maxsize=None)
def get_chrome_launch_options() -> BrowserConfig:
    """The process-wide browser launch options, worked out on first use."""
    return build_browser_config(get_config())


@dataclass(frozen=True)
class SmtpClient:
    """Sends messages through one SMTP server."""

    host: str
    port: int
    encryption: str = ""
    credentials: tuple[str, str] | None = None

    @classmethod
    def from_config(cls, smtp: Smtp) -> SmtpClient:
        """Client for the SMTP settings; encryption is ``starttls``, ``ssltls`` or none."""
        encryption = smtp.smtp_encryption if smtp.smtp_encryption in ("starttls", "ssltls") else ""
        credentials = None
        if smtp.smtp_username and smtp.smtp_password:
            credentials = (smtp.smtp_username, smtp.smtp_password)
        return cls(
            host=smtp.smtp_host,
            port=smtp.smtp_port,
            encryption=encryption,
            credentials=credentials,
        )

    def _send_blocking(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.encryption == "ssltls":
            connection = smtplib.SMTP_SSL(self.host, self.port, context=context)
        else:
            connection = smtplib.SMTP(self.host, self.port)
        with connection:
            if self.encryption == "starttls":
                connection.starttls(context=context)
            if self.credentials is not None:
                connection.login(*self.credentials)
            connection.send_message(message)

    async def send(self, message: EmailMessage) -> None:
        """Deliver ``message`` without blocking the event loop."""
        await asyncio.to_thread(self._send_blocking, message)


@functools.lru_cache(maxsize=None)
def get_smtp_client() -> SmtpClient:
    """The process-wide SMTP client."""
    return SmtpClient.from_config(get_config().smtp)