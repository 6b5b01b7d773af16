"""Jinja2 environments and the built-in report templates."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import jinja2

from .types import Report

TXT_TEMPLATE = """\
DMARC report with id {{ report_metadata.report_id }}
Organization: {{ report_metadata.org_name }} ({{ report_metadata.email }})
Date range: since {{ report_metadata.date_range.begin }} until {{ report_metadata.date_range.end }}
Policy published: {{ policy_published.domain }}: p={{ policy_published.p }} sp={{ policy_published.sp }} pct={{ policy_published.pct }} adkim={{ policy_published.adkim }} aspf={{ policy_published.aspf }}
Messages: {{ stats.all }}, passed {{ stats.passed }} ({{ stats.passed_percent }}%), failed {{ stats.failed }}

source ip | hostname | count | disposition | dkim | spf | header from | envelope from
{% for record in records -%}
{{ record.source_ip }} | {{ record.source_hostname or "-" }} | {{ record.count }} | {{ record.disposition }} | {{ record.eval_dkim }} | {{ record.eval_spf }} | {{ record.header_from }} | {{ record.envelope_from or "-" }}
{% endfor %}"""

_HTML_BODY = """\
<h1>DMARC report {{ report_metadata.report_id }}</h1>
<table class="table summary">
  <tr><th>Organization</th><td>{{ report_metadata.org_name }}</td></tr>
  <tr><th>Email</th><td>{{ report_metadata.email }}</td></tr>
  <tr><th>Date range</th><td>{{ report_metadata.date_range.begin }} - {{ report_metadata.date_range.end }}</td></tr>
  <tr><th>Domain</th><td>{{ policy_published.domain }}</td></tr>
  <tr><th>Policy</th><td>p={{ policy_published.p }} sp={{ policy_published.sp }} pct={{ policy_published.pct }}</td></tr>
  <tr><th>Messages</th><td>{{ stats.all }} (passed {{ stats.passed }}, failed {{ stats.failed }}, {{ stats.passed_percent }}%)</td></tr>
</table>
<table class="table records">
  <thead>
    <tr><th>Source IP</th><th>Hostname</th><th>Count</th><th>Disposition</th><th>DKIM</th><th>SPF</th><th>Header from</th></tr>
  </thead>
  <tbody>
  {%- for record in records %}
    <tr class="{{ 'pass' if record.is_passed else 'fail' }}">
      <td>{{ record.source_ip }}</td><td>{{ record.source_hostname }}</td><td>{{ record.count }}</td>
      <td>{{ record.disposition }}</td><td>{{ record.eval_dkim }}</td><td>{{ record.eval_spf }}</td>
      <td>{{ record.header_from }}</td>
    </tr>
  {%- endfor %}
  </tbody>
</table>
"""

HTML_TEMPLATE = (
    """\
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>DMARC report {{ report_metadata.report_id }}</title>
<link rel="stylesheet" href="{{ assets_path }}/css/report.css">
<script src="{{ assets_path }}/js/report.js"></script>
</head>
<body>
"""
    + _HTML_BODY
    + """</body>
</html>
"""
)

HTML_STATIC_TEMPLATE = (
    """\
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>DMARC report {{ report_metadata.report_id }}</title>
<style>
body { font-family: sans-serif; }
table.table { border-collapse: collapse; margin-bottom: 1em; }
table.table th, table.table td { border: 1px solid #ccc; padding: 2px 6px; text-align: left; }
tr.pass { background: #dff0d8; }
tr.fail { background: #f2dede; }
</style>
</head>
<body>
"""
    + _HTML_BODY
    + """</body>
</html>
"""
)

DEFAULT_MERGE_KEY = (
    "{{ report_metadata.org_name }}!{{ report_metadata.email }}!{{ policy_published.domain }}"
)


def now(fmt: str) -> str:
    """Format the current local time with a strftime pattern."""
    return datetime.now().strftime(fmt)


def build_environment(*, autoescape: bool = False) -> jinja2.Environment:
    """Return an environment carrying the shared template globals."""

    env = jinja2.Environment(
        autoescape=autoescape,
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
    )
    env.globals["now"] = now
    return env


def compile_template(source: str, *, autoescape: bool = False) -> jinja2.Template:
    """Compile a template source; raises jinja2.TemplateSyntaxError."""

    return build_environment(autoescape=autoescape).from_string(source)


def template_context(report: Report, **extra: Any) -> dict[str, Any]:
    context: dict[str, Any] = {
        "report": report,
        "report_metadata": report.report_metadata,
        "policy_published": report.policy_published,
        "records": report.records,
        "stats": report.stats,
    }
    context.update(extra)
    return context


def render_merge_key(template: jinja2.Template, report: Report) -> str:
    return template.render(template_context(report))


__all__ = [
    "TXT_TEMPLATE",
    "HTML_TEMPLATE",
    "HTML_STATIC_TEMPLATE",
    "DEFAULT_MERGE_KEY",
    "build_environment",
    "compile_template",
    "template_context",
    "render_merge_key",
    "now",
]
