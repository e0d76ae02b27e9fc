# o2reportgen

A small HTTP service that produces dashboard reports. For each request it
starts a headless Chrome and talks to it over the DevTools protocol. It signs
in to the dashboard web application and opens the requested dashboard for the
requested time range. It then prints the page to a landscape PDF and e-mails
the PDF to the listed recipients. A request with no recipients only loads the
dashboard. That warms the dashboard's data cache, and no e-mail is sent.

## Installation

```
pip install o2reportgen
```

Chrome or Chromium must be installed on the machine. The executable is chosen
as follows:

1. `ZO_CHROME_PATH`, if it is set.
2. Otherwise, unless `ZO_CHROME_CHECK_DEFAULT_PATH` is false, the first match
   among:
   - the `CHROME` environment variable;
   - the common browser names on `PATH`, such as `google-chrome`, `chromium`
     and `msedge`;
   - the standard install locations on macOS and Windows.
3. If neither step finds one, the service searches the directory given by
   `ZO_CHROME_DOWNLOAD_PATH` for an executable named `chrome`, `chromium`,
   `headless_shell` or a similar name.

## Running

```
o2-report-generator
```

The server listens on `127.0.0.1:5090` by default. It serves two routes:

| Method | Path                                   | Purpose                             |
|--------|----------------------------------------|-------------------------------------|
| GET    | `/api/healthz`                         | liveness check                      |
| PUT    | `/api/{org_id}/reports/{name}/send`    | render and send (or cache) a report |

Each access is logged. The log level comes from the `LOG_LEVEL` environment
variable and defaults to `INFO`. The server stops gracefully on SIGINT,
SIGTERM or SIGQUIT, and on SIGBREAK where the platform has it.

To prepare a data directory, the `init-dir` command creates it together with
its parents and, on POSIX systems, sets its mode to `0777`:

```
o2-report-generator init-dir --path ./data
```

Running `init-dir` without `--path` is an error. To print the version:

```
o2-report-generator --version
```

## Configuration

The service reads its settings from the environment. It also loads a `.env`
file in the working directory if there is one. Boolean settings accept
`true/false`, `1/0`, `yes/no` or `on/off`. A value that cannot be parsed stops
the service with an error.

| Variable                        | Default                          |
|---------------------------------|----------------------------------|
| `ZO_REPORT_USER_EMAIL`          | *(required)*                     |
| `ZO_REPORT_USER_PASSWORD`       | *(required)*                     |
| `ZO_HTTP_ADDR`                  | `127.0.0.1` (empty means `0.0.0.0`) |
| `ZO_HTTP_PORT`                  | `5090`                           |
| `ZO_HTTP_IPV6_ENABLED`          | `false` (when true, listens on `::`) |
| `ZO_CHROME_PATH`                | empty (auto-detect)              |
| `ZO_CHROME_CHECK_DEFAULT_PATH`  | `true`                           |
| `ZO_CHROME_DOWNLOAD_PATH`       | `./data/download`                |
| `ZO_CHROME_NO_SANDBOX`          | `false`                          |
| `ZO_CHROME_WITH_HEAD`           | `false`                          |
| `ZO_CHROME_DISABLE_DEFAULT_ARGS`| `false`                          |
| `ZO_CHROME_ADDITIONAL_ARGS`     | empty (comma separated)          |
| `ZO_CHROME_SLEEP_SECS`          | `20`                             |
| `ZO_CHROME_WINDOW_WIDTH`        | `1370`                           |
| `ZO_CHROME_WINDOW_HEIGHT`       | `730`                            |
| `ZO_SMTP_HOST`                  | `localhost`                      |
| `ZO_SMTP_PORT`                  | `25`                             |
| `ZO_SMTP_USER_NAME`             | empty                            |
| `ZO_SMTP_PASSWORD`              | empty                            |
| `ZO_SMTP_FROM_EMAIL`            | empty                            |
| `ZO_SMTP_REPLY_TO`              | empty                            |
| `ZO_SMTP_ENCRYPTION`            | empty, `starttls` or `ssltls`    |

How some of these settings are used:

- The server refuses to start if either of the report user's credentials is
  empty.
- SMTP login is used only when both the SMTP user name and password are set.
- `ZO_CHROME_SLEEP_SECS` limits how long the service waits for every dashboard
  panel to report that it has loaded. When the time runs out, the report is
  made from whatever has loaded by then.
- When a page fails to load during a report run, a PNG screenshot is saved
  under `ZO_CHROME_DOWNLOAD_PATH`.

Here is an example `.env`:

```
ZO_REPORT_USER_EMAIL=reports@example.com
ZO_REPORT_USER_PASSWORD=password
ZO_SMTP_HOST=smtp.example.com
ZO_SMTP_FROM_EMAIL=reports@example.com
ZO_SMTP_ENCRYPTION=starttls
```

## Sending a report

```
PUT /api/default/reports/weekly/send?timezone=Europe/London
Content-Type: application/json
```

```json
{
  "dashboards": [
    {
      "dashboard": "7123456789",
      "folder": "default",
      "tabs": ["default"],
      "variables": [{"key": "service", "value": "api"}],
      "timerange": {"type": "relative", "period": "1w", "from": 0, "to": 0}
    }
  ],
  "email_details": {
    "recipients": ["team@example.com"],
    "title": "Weekly overview",
    "name": "weekly",
    "message": "<p>This week's numbers.</p>",
    "dashb_url": "http://localhost:5080/web"
  }
}
```

How the request is read:

- `timezone` defaults to `Europe/London` when it is left out.
- `variables` and `timerange` are optional. The default time range is relative
  `1w`.
- `recepients` is accepted as a spelling of `recipients`.
- A relative period is a number followed by a unit: `m` for minutes, `h` for
  hours, `d` for days or `w` for weeks. Any other unit counts as months of 30
  days. The dashboard link in the e-mail is pinned to the matching absolute
  `from`/`to` times.
- An absolute range uses `"type": "absolute"`, with `from` and `to` given in
  microseconds.
- Only the first dashboard in the list is rendered, and only its first tab. At
  least one tab is required.
- The attachment is named after the title. Every character other than an ASCII
  letter, a digit, `-`, `_` or a space is replaced by `_`.

The reply is JSON holding `code` and `message`. The HTTP status matches the
code: `200` on success and `500` on failure. A body that is not valid JSON, or
that is not sent as `application/json`, gets a plain-text `400` reply.

## Using it as a library

You can build and run the server from Python:

```python
import asyncio

from o2reportgen.app import run_server
from o2reportgen.config import get_config

asyncio.run(run_server(get_config()))
```

The package is organised as follows:

- `o2reportgen.router.create_app()` returns the `aiohttp` application on its
  own.
- `o2reportgen.models` holds the request models (`Report`, `ReportDashboard`,
  `EmailDetails`, `ReportTimerange`) with `from_dict`/`to_dict`.
- `o2reportgen.report` holds the steps: `generate_report` renders a dashboard,
  `build_dashboard_urls` builds the dashboard URLs, and `build_email` and
  `send_email` handle the mail.
- `o2reportgen.browser` holds the minimal DevTools client (`Browser`, `Page`,
  `Element`).

## What it does not do

- It does not download a browser. If no Chrome is found, one must already be
  in `ZO_CHROME_DOWNLOAD_PATH`, or report generation fails.
- It serves HTTP only. The gRPC settings (`ZO_GRPC_*`) and the
  `ZO_TOKIO_CONSOLE_*` settings are read and checked, but nothing uses them.