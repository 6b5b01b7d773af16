"""Group reports by merge key and combine each group into one report."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

import jinja2

from .templates import render_merge_key
from .types import DateRange, Report

LOGGER = logging.getLogger(__name__)


class MergeError(RuntimeError):
    """Raised when a merge key cannot be rendered."""


def group_merge_reports(reports: Sequence[Report], key_template: jinja2.Template) -> list[Report]:
    """Return one report per distinct merge key, in first-seen key order."""

    groups: dict[str, list[Report]] = {}
    for report in reports:
        try:
            key = render_merge_key(key_template, report)
        except (jinja2.TemplateError, TypeError, ValueError, ArithmeticError) as exc:
            raise MergeError(
                f"Unable to render merge key for report {report.report_metadata.report_id}: {exc}"
            ) from exc
        groups.setdefault(key, []).append(report)

    merged: list[Report] = []
    for key, members in groups.items():
        if len(members) > 1:
            LOGGER.info("Merging %d reports with key %s", len(members), key)
        merged.append(merge_reports(members))
    return merged


def merge_reports(reports: Sequence[Report]) -> Report:
    """Combine reports into the first one: widened date range, all records."""

    if not reports:
        raise ValueError("merge_reports() needs at least one report")
    first = reports[0]
    if len(reports) == 1:
        return first

    date_range = DateRange(
        begin=min(report.report_metadata.date_range.begin for report in reports),
        end=max(report.report_metadata.date_range.end for report in reports),
    )
    metadata = replace(
        first.report_metadata,
        report_id=",".join(report.report_metadata.report_id for report in reports),
        date_range=date_range,
        errors=tuple(error for report in reports for error in report.report_metadata.errors),
    )
    records = tuple(record for report in reports for record in report.records)
    return replace(first, report_metadata=metadata, records=records)


__all__ = ["MergeError", "group_merge_reports", "merge_reports"]
