"""Report requests as sent by the server, and their JSON form."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


class ReportType(enum.Enum):
    """What a report run produces: a PDF to mail, or only warmed caches."""

    PDF = "pdf"
    CACHE = "cache"


class ReportTimerangeType(enum.Enum):
    RELATIVE = "relative"
    ABSOLUTE = "absolute"


def _mapping(data: Any, context: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{context}: expected an object")
    return data


def _field(data: Mapping[str, Any], key: str, context: str) -> Any:
    if key not in data:
        raise ValueError(f"{context}: missing field `{key}`")
    return data[key]


def _string(data: Mapping[str, Any], key: str, context: str) -> str:
    value = _field(data, key, context)
    if not isinstance(value, str):
        raise ValueError(f"{context}: field `{key}` must be a string")
    return value


def _i64(data: Mapping[str, Any], key: str, context: str) -> int:
    value = _field(data, key, context)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{context}: field `{key}` must be an integer")
    if not _I64_MIN <= value <= _I64_MAX:
        raise ValueError(f"{context}: field `{key}` out of range")
    return value


def _list(value: Any, key: str, context: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"{context}: field `{key}` must be a list")
    return value


def _string_list(value: Any, key: str, context: str) -> list[str]:
    items = _list(value, key, context)
    if not all(isinstance(item, str) for item in items):
        raise ValueError(f"{context}: field `{key}` must hold strings")
    return list(items)


@dataclass
class ReportTimerange:
    """Time range of the dashboard data; ``from_`` and ``to`` are microseconds."""

    range_type: ReportTimerangeType = ReportTimerangeType.RELATIVE
    period: str = "1w"
    from_: int = 0
    to: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> ReportTimerange:
        context = "timerange"
        data = _mapping(data, context)
        raw_type = _field(data, "type", context)
        try:
            range_type = ReportTimerangeType(raw_type)
        except ValueError:
            raise ValueError(f"{context}: unknown variant {raw_type!r}") from None
        return cls(
            range_type=range_type,
            period=_string(data, "period", context),
            from_=_i64(data, "from", context),
            to=_i64(data, "to", context),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.range_type.value,
            "period": self.period,
            "from": self.from_,
            "to": self.to,
        }


@dataclass
class ReportDashboardVariable:
    key: str = ""
    value: str = ""
    id: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ReportDashboardVariable:
        context = "variable"
        data = _mapping(data, context)
        variable_id = data.get("id")
        if variable_id is not None and not isinstance(variable_id, str):
            raise ValueError(f"{context}: field `id` must be a string")
        return cls(
            key=_string(data, "key", context),
            value=_string(data, "value", context),
            id=variable_id,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"key": self.key, "value": self.value}
        if self.id is not None:
            result["id"] = self.id
        return result


@dataclass
class ReportDashboard:
    dashboard: str
    folder: str
    tabs: list[str]
    variables: list[ReportDashboardVariable] = field(default_factory=list)
    timerange: ReportTimerange = field(default_factory=ReportTimerange)

    @classmethod
    def from_dict(cls, data: Any) -> ReportDashboard:
        context = "dashboard"
        data = _mapping(data, context)
        variables = []
        if "variables" in data:
            variables = [
                ReportDashboardVariable.from_dict(item)
                for item in _list(data["variables"], "variables", context)
            ]
        timerange = (
            ReportTimerange.from_dict(data["timerange"])
            if "timerange" in data
            else ReportTimerange()
        )
        return cls(
            dashboard=_string(data, "dashboard", context),
            folder=_string(data, "folder", context),
            tabs=_string_list(_field(data, "tabs", context), "tabs", context),
            variables=variables,
            timerange=timerange,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dashboard": self.dashboard,
            "folder": self.folder,
            "tabs": list(self.tabs),
            "variables": [variable.to_dict() for variable in self.variables],
            "timerange": self.timerange.to_dict(),
        }


@dataclass
class EmailDetails:
    recipients: list[str]
    title: str
    name: str
    message: str
    dashb_url: str

    @classmethod
    def from_dict(cls, data: Any) -> EmailDetails:
        """Parse e-mail details; ``recepients`` is accepted for ``recipients``."""
        context = "email_details"
        data = _mapping(data, context)
        if "recipients" in data and "recepients" in data:
            raise ValueError(f"{context}: duplicate field `recipients`")
        key = "recepients" if "recepients" in data else "recipients"
        if key not in data:
            raise ValueError(f"{context}: missing field `recipients`")
        return cls(
            recipients=_string_list(data[key], "recipients", context),
            title=_string(data, "title", context),
            name=_string(data, "name", context),
            message=_string(data, "message", context),
            dashb_url=_string(data, "dashb_url", context),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipients": list(self.recipients),
            "title": self.title,
            "name": self.name,
            "message": self.message,
            "dashb_url": self.dashb_url,
        }


@dataclass
class Report:
    dashboards: list[ReportDashboard]
    email_details: EmailDetails

    @classmethod
    def from_dict(cls, data: Any) -> Report:
        context = "report"
        data = _mapping(data, context)
        dashboards = [
            ReportDashboard.from_dict(item)
            for item in _list(_field(data, "dashboards", context), "dashboards", context)
        ]
        return cls(
            dashboards=dashboards,
            email_details=EmailDetails.from_dict(_field(data, "email_details", context)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dashboards": [dashboard.to_dict() for dashboard in self.dashboards],
            "email_details": self.email_details.to_dict(),
        }