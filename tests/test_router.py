import pytest
from aiohttp.test_utils import TestClient, TestServer

from o2reportgen.router import HttpResponse, create_app


def _report(dashboards):
    return {
        "dashboards": dashboards,
        "email_details": {
            "recipients": [],
            "title": "t",
            "name": "n",
            "message": "m",
            "dashb_url": "http://localhost:5080/web",
        },
    }


def test_http_response_success():
    assert HttpResponse.success("ok").to_dict() == {"code": 200, "message": "ok"}


def test_http_response_internal_server_error():
    assert HttpResponse.internal_server_error("boom").to_dict() == {"code": 500, "message": "boom"}


def test_http_response_optional_fields():
    body = HttpResponse(code=400, message="bad", error_detail="detail", trace_id="t1")
    assert body.to_dict() == {"code": 400, "message": "bad", "error_detail": "detail", "trace_id": "t1"}


@pytest.mark.asyncio
async def test_healthz():
    async with TestClient(TestServer(create_app())) as client:
        response = await client.get("/api/healthz")
        assert response.status == 200
        assert await response.text() == "Server up and running"


@pytest.mark.asyncio
async def test_send_report_rejects_invalid_json():
    async with TestClient(TestServer(create_app())) as client:
        response = await client.put(
            "/api/org1/reports/r1/send",
            data="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status == 400


@pytest.mark.asyncio
async def test_send_report_rejects_missing_fields():
    async with TestClient(TestServer(create_app())) as client:
        response = await client.put("/api/org1/reports/r1/send", json={"dashboards": []})
        assert response.status == 400
        assert "email_details" in await response.text()


@pytest.mark.asyncio
async def test_send_report_rejects_non_json_content_type():
    async with TestClient(TestServer(create_app())) as client:
        response = await client.put("/api/org1/reports/r1/send", data="hello")
        assert response.status == 400


@pytest.mark.asyncio
async def test_send_report_without_dashboards_is_server_error():
    async with TestClient(TestServer(create_app())) as client:
        response = await client.put("/api/org1/reports/r1/send", json=_report([]))
        assert response.status == 500
        assert (await response.json())["code"] == 500


@pytest.mark.asyncio
async def test_send_report_without_tabs_reports_error():
    dashboard = {"dashboard": "d1", "folder": "f1", "tabs": []}
    async with TestClient(TestServer(create_app())) as client:
        response = await client.put(
            "/api/org1/reports/r1/send?timezone=UTC", json=_report([dashboard])
        )
        assert response.status == 500
        assert await response.json() == {"code": 500, "message": "Atleast one tab is required"}


@pytest.mark.asyncio
async def test_send_report_wrong_method():
    async with TestClient(TestServer(create_app())) as client:
        response = await client.post("/api/org1/reports/r1/send", json=_report([]))
        assert response.status == 405