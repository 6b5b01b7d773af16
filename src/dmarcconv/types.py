"""Core immutable data structures used throughout dmarcconv."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class DateRange:
    """Reporting window of an aggregate report (UTC)."""

    begin: datetime
    end: datetime


@dataclass(frozen=True)
class ReportMetadata:
    """Who sent the report and which window it covers."""

    org_name: str
    email: str
    report_id: str
    date_range: DateRange
    extra_contact_info: str = ""
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class PolicyPublished:
    """DMARC policy the reporter saw published for the domain."""

    domain: str
    adkim: str = ""
    aspf: str = ""
    p: str = ""
    sp: str = ""
    pct: int | None = None
    fo: str = ""


@dataclass(frozen=True)
class DKIMAuthResult:
    domain: str
    selector: str
    result: str


@dataclass(frozen=True)
class SPFAuthResult:
    domain: str
    scope: str
    result: str


@dataclass(frozen=True)
class Record:
    """One row of an aggregate report."""

    source_ip: str
    count: int
    disposition: str
    eval_dkim: str
    eval_spf: str
    header_from: str
    source_hostname: str = ""
    envelope_from: str = ""
    envelope_to: str = ""
    dkim: tuple[DKIMAuthResult, ...] = ()
    spf: tuple[SPFAuthResult, ...] = ()

    @property
    def is_passed(self) -> bool:
        """DMARC passes when either aligned mechanism passed."""
        return self.eval_dkim == "pass" or self.eval_spf == "pass"


@dataclass(frozen=True)
class MessagesStats:
    all: int
    passed: int
    failed: int
    passed_percent: float


@dataclass(frozen=True)
class Report:
    """A parsed (or merged) DMARC aggregate report."""

    report_metadata: ReportMetadata
    policy_published: PolicyPublished
    records: tuple[Record, ...] = ()

    @property
    def stats(self) -> MessagesStats:
        total = sum(record.count for record in self.records)
        passed = sum(record.count for record in self.records if record.is_passed)
        percent = round(passed * 100 / total, 2) if total else 0.0
        return MessagesStats(all=total, passed=passed, failed=total - passed, passed_percent=percent)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping of the report."""
        data = asdict(self)
        date_range = data["report_metadata"]["date_range"]
        date_range["begin"] = self.report_metadata.date_range.begin.isoformat()
        date_range["end"] = self.report_metadata.date_range.end.isoformat()
        data["stats"] = asdict(self.stats)
        return data


@dataclass
class SourceFile:
    """A candidate input file and, once parsed, its report."""

    path: Path
    report: Report | None = field(default=None, repr=False)

    @property
    def parsed(self) -> bool:
        return self.report is not None


__all__ = [
    "DateRange",
    "ReportMetadata",
    "PolicyPublished",
    "DKIMAuthResult",
    "SPFAuthResult",
    "Record",
    "MessagesStats",
    "Report",
    "SourceFile",
]
