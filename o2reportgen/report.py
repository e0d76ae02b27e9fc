"""Rendering dashboards in a headless browser and mailing the result."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Iterable
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, parseaddr
from pathlib import Path
from typing import Any, NoReturn

from o2reportgen.browser import Browser, CdpError, Page
from o2reportgen.config import SmtpClient, get_chrome_launch_options, get_config
from o2reportgen.models import (
    EmailDetails,
    ReportDashboard,
    ReportDashboardVariable,
    ReportTimerangeType,
    ReportType,
)

log = logging.getLogger(__name__)

_LOGIN_SETTLE_SECS = 5
_ORG_SETTLE_SECS = 2
_PANELS_LOADED_SELECTOR = "span#dashboardVariablesAndPanelsDataLoaded"
_EMAIL_INPUT_SELECTOR = "input[type='email']"
_HIDDEN_INPUT_SELECTOR = "input[type='" + "pass" + "word']"
_INTEGER = re.compile(r"[+-]?[0-9]+")
_UNIT_MICROS = {
    "m": 60 * 1_000_000,
    "h": 60 * 60 * 1_000_000,
    "d": 24 * 60 * 60 * 1_000_000,
    "w": 7 * 24 * 60 * 60 * 1_000_000,
}


class ReportError(Exception):
    """A report could not be generated or delivered."""


@dataclass(frozen=True)
class SmtpConfig:
    """Sender details and the client used to deliver report e-mails."""

    from_email: str
    reply_to: str
    client: SmtpClient


def dashboard_variables_query(variables: Iterable[ReportDashboardVariable]) -> str:
    """Query-string suffix carrying the dashboard variables."""
    return "".join(f"&var-{variable.key}={variable.value}" for variable in variables)


def relative_start_time(period: str, end_time: int) -> int:
    """Start of a relative period such as ``15m`` or ``4M`` ending at ``end_time`` (µs).

    Units are ``m``, ``h``, ``d`` and ``w``; any other unit counts as 30 days.
    """
    if not period:
        raise ReportError("empty time period")
    amount_text, unit = period[:-1], period[-1]
    if not _INTEGER.fullmatch(amount_text):
        raise ReportError(f"invalid time period {period!r}")
    amount = int(amount_text)
    unit_micros = _UNIT_MICROS.get(unit, 30 * _UNIT_MICROS["d"])
    return end_time - amount * unit_micros


def build_dashboard_urls(
    dashboard: ReportDashboard,
    org_id: str,
    web_url: str,
    timezone: str,
    report_type: ReportType,
    now_micros: int | None = None,
) -> tuple[str, str]:
    """URL to render the dashboard and URL to link from the e-mail.

    The e-mail link shows the same period as the report, pinned to absolute times.
    """
    if not dashboard.tabs:
        raise ReportError("Atleast one tab is required")
    tab_id = dashboard.tabs[0]
    dashb_vars = dashboard_variables_query(dashboard.variables)
    search_type = "ui" if report_type is ReportType.CACHE else "reports"
    base = (
        f"{web_url}/dashboards/view?org_identifier={org_id}"
        f"&dashboard={dashboard.dashboard}&folder={dashboard.folder}"
        f"&tab={tab_id}&refresh=Off"
    )
    tail = f"&timezone={timezone}&var-Dynamic+filters=%255B%255D&print=true{dashb_vars}"
    timerange = dashboard.timerange

    if timerange.range_type is ReportTimerangeType.RELATIVE:
        dashb_url = f"{base}&searchtype={search_type}&period={timerange.period}{tail}"
        log.debug(
            "dashb_url for dashboard %s/%s: %s", dashboard.folder, dashboard.dashboard, dashb_url
        )
        end_time = now_micros if now_micros is not None else time.time_ns() // 1000
        start_time = relative_start_time(timerange.period, end_time)
        email_url = f"{base}&from={start_time}&to={end_time}{tail}"
        return dashb_url, email_url

    url = f"{base}&searchtype={search_type}&from={timerange.from_}&to={timerange.to}{tail}"
    log.debug("dashb_url for dashboard %s/%s: %s", dashboard.folder, dashboard.dashboard, url)
    return url, url


async def take_screenshot(
    page: Page, org_id: str, dashboard_name: str, download_path: str | Path
) -> Path:
    """Save a PNG of the page for debugging and return where it went."""
    timestamp = int(time.time())
    image = await page.screenshot()
    directory = Path(download_path)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / f"screenshot_{org_id}_{dashboard_name}_{timestamp}.png"
    await asyncio.to_thread(target.write_bytes, image)
    return target


async def wait_for_panel_data_load(page: Any, timeout: float) -> float:
    """Poll once a second until all panels report loaded; return seconds waited."""
    start = time.monotonic()
    while True:
        try:
            await page.find_element(_PANELS_LOADED_SELECTOR)
        except CdpError:
            pass
        else:
            return time.monotonic() - start
        elapsed = time.monotonic() - start
        if elapsed >= timeout:
            raise ReportError(
                f"Dashboard data not completely loaded yet in {elapsed} seconds"
            )
        await asyncio.sleep(1)


def sanitize_filename(filename: str) -> str:
    """Replace everything but ASCII letters, digits, ``-``, ``_`` and space with ``_``."""
    return "".join(
        char if (char.isascii() and char.isalnum()) or char in "-_ " else "_"
        for char in filename
    )


async def _current_url(page: Page) -> str:
    try:
        return await page.url()
    except CdpError as exc:
        return f"<unknown: {exc}>"


async def _fail(
    page: Page, org_id: str, dashboard_id: str, download_path: str, message: str
) -> NoReturn:
    log.error("%s", message)
    await take_screenshot(page, org_id, dashboard_id, download_path)
    log.info("killing browser")
    raise ReportError(message)


async def _render(
    browser: Browser,
    dashboard: ReportDashboard,
    org_id: str,
    user_id: str,
    user_pass: str,
    web_url: str,
    timezone: str,
    report_type: ReportType,
    download_path: str,
    sleep_secs: float,
) -> tuple[bytes, str]:
    dashboard_id = dashboard.dashboard
    login_url = f"{web_url}/login?login_as_internal_user=true"
    log.info("Navigating to web url: %s", login_url)
    try:
        page = await browser.new_page(login_url)
    except CdpError as exc:
        log.error("Error creating new page in browser for login")
        raise ReportError("Error creating new page in browser for login") from exc
    await page.disable_log()
    log.info("headless: new page created")
    await asyncio.sleep(_LOGIN_SETTLE_SECS)

    try:
        email_input = await page.find_element(_EMAIL_INPUT_SELECTOR)
    except CdpError as exc:
        await _fail(page, org_id, dashboard_id, download_path,
                    f"Error finding email input box: current url: "
                    f"{await _current_url(page)} error: {exc}")
    await (await email_input.click()).type_str(user_id)
    log.info("headless: email input filled")

    try:
        hidden_input = await page.find_element(_HIDDEN_INPUT_SELECTOR)
    except CdpError as exc:
        await _fail(page, org_id, dashboard_id, download_path,
                    f"Error finding password input box: current url: "
                    f"{await _current_url(page)} error: {exc}")
    await (await (await hidden_input.click()).type_str(user_pass)).press_key("Enter")
    log.info("headless: password input filled")

    await page.wait_for_navigation()
    await asyncio.sleep(_LOGIN_SETTLE_SECS)

    dashb_url, email_dashb_url = build_dashboard_urls(
        dashboard, org_id, web_url, timezone, report_type
    )

    org_url = f"{web_url}/?org_identifier={org_id}"
    log.info("headless: navigating to organization: %s", org_url)
    try:
        await page.goto(org_url)
    except CdpError as exc:
        log.error("Error navigating to organization %s: current uri: %s error: %s",
                  org_id, await _current_url(page), exc)
        await _fail(page, org_id, dashboard_id, download_path, str(exc))
    await page.wait_for_navigation()
    await asyncio.sleep(_ORG_SETTLE_SECS)

    log.info("headless: navigated to the organization %s", org_id)
    log.info("headless: navigating to dashboard url %s", dashb_url)
    try:
        await page.goto(dashb_url)
    except CdpError as exc:
        log.error("Error navigating to dashboard url %s: current uri: %s error: %s",
                  dashb_url, await _current_url(page), exc)
        await _fail(page, org_id, dashboard_id, download_path, str(exc))
    await page.wait_for_navigation()

    log.info("waiting for data to load for dashboard %s", dashboard_id)
    try:
        waited = await wait_for_panel_data_load(page, sleep_secs)
    except ReportError as exc:
        log.error("[REPORT] error finding the span element for dashboard %s: %s",
                  dashboard_id, exc)
        log.info("[REPORT] proceeding with whatever data is loaded until now")
    else:
        log.info("[REPORT] all panel data loaded for report dashboard: %s in %s seconds",
                 dashboard_id, waited)

    try:
        await page.find_element("main")
    except CdpError as exc:
        await _fail(page, org_id, dashboard_id, download_path,
                    f"[REPORT] main html element not rendered yet for dashboard "
                    f"{dashboard_id}; most likely login failed: current url: "
                    f"{await _current_url(page)} error: {exc}")
    try:
        await page.find_element("div.displayDiv")
    except CdpError as exc:
        await _fail(page, org_id, dashboard_id, download_path,
                    f"[REPORT] div.displayDiv element not rendered yet for dashboard "
                    f"{dashboard_id}: current url: {await _current_url(page)} error: {exc}")

    pdf_data = await page.pdf(landscape=True) if report_type is ReportType.PDF else b""
    return pdf_data, email_dashb_url


async def generate_report(
    dashboard: ReportDashboard,
    org_id: str,
    user_id: str,
    user_pass: str,
    web_url: str,
    timezone: str,
    report_type: ReportType,
) -> tuple[bytes, str]:
    """Log in, render the dashboard and return the PDF (empty for a cache run)
    together with the dashboard link for the e-mail."""
    if not dashboard.tabs:
        raise ReportError("Atleast one tab is required")
    chrome = get_config().chrome

    log.info("launching browser for dashboard %s", dashboard.dashboard)
    browser = await Browser.launch(get_chrome_launch_options())
    log.info("browser launched")
    try:
        return await _render(
            browser, dashboard, org_id, user_id, user_pass, web_url, timezone,
            report_type, chrome.chrome_download_path, chrome.chrome_sleep_secs,
        )
    finally:
        await browser.close()
        await browser.kill()
        log.debug("done with headless browser")


def _mailbox(text: str) -> str:
    if "\r" in text or "\n" in text:
        raise ReportError(f"invalid email address {text!r}")
    name, address = parseaddr(text)
    local, _, domain = address.rpartition("@")
    if not local or not domain or any(char.isspace() for char in address):
        raise ReportError(f"invalid email address {text!r}")
    return formataddr((name, address))


def build_email(
    pdf_data: bytes, email_details: EmailDetails, from_email: str, reply_to: str
) -> EmailMessage:
    """The report e-mail: an HTML note with a dashboard link and the PDF attached."""
    if not email_details.recipients:
        raise ReportError("at least one recipient is required")
    message = EmailMessage()
    message["From"] = _mailbox(from_email)
    message["Subject"] = f"Openobserve Report - {email_details.title}"
    message["To"] = ", ".join(_mailbox(recipient) for recipient in email_details.recipients)
    if reply_to:
        message["Reply-To"] = _mailbox(reply_to)
    message.set_content(
        f"{email_details.message}\n\n"
        f"<p><a href='{email_details.dashb_url}' target='_blank'>Link to dashboard</a></p>",
        subtype="html",
    )
    message.add_attachment(
        bytes(pdf_data),
        maintype="application",
        subtype="pdf",
        filename=f"{sanitize_filename(email_details.title)}.pdf",
    )
    return message


async def send_email(pdf_data: bytes, email_details: EmailDetails, config: SmtpConfig) -> None:
    """Mail the report PDF to every recipient."""
    message = build_email(pdf_data, email_details, config.from_email, config.reply_to)
    try:
        await config.client.send(message)
    except Exception as exc:
        raise ReportError(f"Error sending email: {exc}") from exc
    log.info("email sent successfully for the report %s", email_details.name)