"""HTTP endpoints of the report server."""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Any

from aiohttp import web

from o2reportgen.config import get_config, get_smtp_client
from o2reportgen.models import Report, ReportType
from o2reportgen.report import SmtpConfig, generate_report, send_email

log = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/London"


@dataclass
class HttpResponse:
    """JSON body of an API reply; ``code`` follows HTTP status codes."""

    code: int
    message: str
    error_detail: str | None = None
    trace_id: str | None = None

    @classmethod
    def internal_server_error(cls, message: str) -> HttpResponse:
        return cls(code=500, message=message)

    @classmethod
    def success(cls, message: str) -> HttpResponse:
        return cls(code=200, message=message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.error_detail is not None:
            result["error_detail"] = self.error_detail
        if self.trace_id is not None:
            result["trace_id"] = self.trace_id
        return result


def _json(body: HttpResponse) -> web.Response:
    return web.json_response(body.to_dict(), status=body.code)


async def healthz(request: web.Request) -> web.Response:
    return web.Response(text="Server up and running")


async def _read_report(request: web.Request) -> Report:
    if request.content_type != "application/json":
        raise ValueError("Content type error")
    return Report.from_dict(json.loads(await request.text()))


async def send_report(request: web.Request) -> web.Response:
    """Generate the report's dashboard and mail it, or only warm caches when
    there are no recipients."""
    try:
        report = await _read_report(request)
    except ValueError as exc:
        return web.Response(status=400, text=f"Json deserialize error: {exc}")

    org_id = request.match_info["org_id"]
    report_name = request.match_info["name"]
    timezone = request.query.get("timezone", DEFAULT_TIMEZONE)
    report_type = ReportType.CACHE if not report.email_details.recipients else ReportType.PDF

    if not report.dashboards:
        return _json(HttpResponse.internal_server_error("at least one dashboard is required"))

    config = get_config()
    try:
        pdf_data, email_dashboard_url = await generate_report(
            report.dashboards[0],
            org_id,
            config.auth.user_email,
            config.auth.user_password,
            report.email_details.dashb_url,
            timezone,
            report_type,
        )
    except Exception as exc:
        log.error("Error generating pdf for report %s/%s: %s", org_id, report_name, exc)
        return _json(HttpResponse.internal_server_error(str(exc)))

    if report_type is ReportType.CACHE:
        log.info("Dashboard data cached by report %s", report_name)
        return _json(HttpResponse.success(f"dashboard data cached by report {report_name}"))

    try:
        await send_email(
            pdf_data,
            dataclasses.replace(report.email_details, dashb_url=email_dashboard_url),
            SmtpConfig(
                from_email=config.smtp.smtp_from_email,
                reply_to=config.smtp.smtp_reply_to,
                client=get_smtp_client(),
            ),
        )
    except Exception as exc:
        log.error("Error sending emails to recepients: %s", exc)
        return _json(HttpResponse.internal_server_error(str(exc)))
    return _json(HttpResponse.success("report sent to emails successfully"))


def create_app() -> web.Application:
    """The application with every route under ``/api``."""
    app = web.Application()
    app.router.add_get("/api/healthz", healthz)
    app.router.add_put("/api/{org_id}/reports/{name}/send", send_report)
    return app