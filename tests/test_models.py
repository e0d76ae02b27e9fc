import json

import pytest

from o2reportgen.models import (
    EmailDetails,
    Report,
    ReportDashboard,
    ReportDashboardVariable,
    ReportTimerange,
    ReportTimerangeType,
)


def sample_report_dict():
    return {
        "dashboards": [
            {
                "dashboard": "dash1",
                "folder": "default",
                "tabs": ["tab1"],
                "variables": [{"key": "host", "value": "web", "id": "v1"}],
                "timerange": {"type": "absolute", "period": "", "from": 100, "to": 200},
            }
        ],
        "email_details": {
            "recipients": ["alice@example.com"],
            "title": "Weekly",
            "name": "weekly",
            "message": "Hello",
            "dashb_url": "http://localhost:5080/web",
        },
    }


def test_timerange_defaults():
    timerange = ReportTimerange()
    assert timerange.range_type is ReportTimerangeType.RELATIVE
    assert timerange.period == "1w"
    assert (timerange.from_, timerange.to) == (0, 0)


def test_timerange_wire_names():
    timerange = ReportTimerange(ReportTimerangeType.ABSOLUTE, "", 5, 9)
    assert timerange.to_dict() == {"type": "absolute", "period": "", "from": 5, "to": 9}


def test_timerange_round_trip():
    timerange = ReportTimerange(ReportTimerangeType.RELATIVE, "15m", 0, 0)
    assert ReportTimerange.from_dict(timerange.to_dict()) == timerange


def test_timerange_unknown_type():
    with pytest.raises(ValueError):
        ReportTimerange.from_dict({"type": "sideways", "period": "1h", "from": 0, "to": 0})


def test_timerange_missing_field():
    with pytest.raises(ValueError, match="to"):
        ReportTimerange.from_dict({"type": "relative", "period": "1h", "from": 0})


def test_timerange_rejects_bool_and_overflow():
    with pytest.raises(ValueError):
        ReportTimerange.from_dict({"type": "relative", "period": "1h", "from": True, "to": 0})
    with pytest.raises(ValueError):
        ReportTimerange.from_dict({"type": "relative", "period": "1h", "from": 2**63, "to": 0})


def test_variable_id_omitted_when_absent():
    variable = ReportDashboardVariable.from_dict({"key": "a", "value": "b"})
    assert variable.id is None
    assert variable.to_dict() == {"key": "a", "value": "b"}


def test_variable_id_kept():
    variable = ReportDashboardVariable.from_dict({"key": "a", "value": "b", "id": "x"})
    assert variable.to_dict()["id"] == "x"


def test_dashboard_defaults_applied():
    dashboard = ReportDashboard.from_dict({"dashboard": "d", "folder": "f", "tabs": ["t"]})
    assert dashboard.variables == []
    assert dashboard.timerange == ReportTimerange()


def test_dashboard_null_variables_rejected():
    with pytest.raises(ValueError):
        ReportDashboard.from_dict(
            {"dashboard": "d", "folder": "f", "tabs": ["t"], "variables": None}
        )


def test_dashboard_tabs_must_be_strings():
    with pytest.raises(ValueError):
        ReportDashboard.from_dict({"dashboard": "d", "folder": "f", "tabs": [1]})


def test_email_details_alias():
    details = EmailDetails.from_dict(
        {
            "recepients": ["bob@example.com"],
            "title": "t",
            "name": "n",
            "message": "m",
            "dashb_url": "u",
        }
    )
    assert details.recipients == ["bob@example.com"]
    assert "recipients" in details.to_dict()
    assert "recepients" not in details.to_dict()


def test_email_details_duplicate_field():
    with pytest.raises(ValueError):
        EmailDetails.from_dict(
            {
                "recepients": [],
                "recipients": [],
                "title": "t",
                "name": "n",
                "message": "m",
                "dashb_url": "u",
            }
        )


def test_report_round_trip_through_json():
    data = sample_report_dict()
    report = Report.from_dict(json.loads(json.dumps(data)))
    assert report.to_dict() == data
    assert report.dashboards[0].timerange.range_type is ReportTimerangeType.ABSOLUTE


def test_report_ignores_unknown_fields():
    data = sample_report_dict()
    data["extra"] = 1
    report = Report.from_dict(data)
    assert report.email_details.title == "Weekly"


def test_report_requires_object():
    with pytest.raises(ValueError):
        Report.from_dict([])