"""DMARC aggregate report parsing (plain, gzip or zip compressed XML)."""

from __future__ import annotations

import gzip
import io
import logging
import socket
import zipfile
import zlib
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import BinaryIO
from xml.etree.ElementTree import Element, ParseError as XMLParseError

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring

from .types import (
    DateRange,
    DKIMAuthResult,
    PolicyPublished,
    Record,
    Report,
    ReportMetadata,
    SPFAuthResult,
)

LOGGER = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
ZIP_MAGIC = b"PK\x03\x04"


class ParseError(ValueError):
    """Raised when a file is not a readable DMARC aggregate report."""


def read_parse(
    source: BinaryIO,
    label: str,
    lookup_addr: bool = False,
    lookup_limit: int = 50,
) -> Report:
    """Parse the report read from *source*; *label* names it in errors."""

    try:
        data = source.read()
    except OSError as exc:
        raise ParseError(f"{label}: {exc}") from exc

    xml_bytes = _decompress(data, label)
    report = parse_report(xml_bytes, label)
    if lookup_addr:
        report = _with_hostnames(report, lookup_limit)
    return report


def parse_report(xml_bytes: bytes, label: str = "<report>") -> Report:
    try:
        root = fromstring(xml_bytes)
    except (XMLParseError, DefusedXmlException) as exc:
        raise ParseError(f"{label}: invalid XML: {exc}") from exc

    feedback = root if _local(root.tag) == "feedback" else _child(root, "feedback")
    if feedback is None:
        raise ParseError(f"{label}: missing <feedback> element")

    metadata_el = _child(feedback, "report_metadata")
    if metadata_el is None:
        raise ParseError(f"{label}: missing <report_metadata> element")
    policy_el = _child(feedback, "policy_published")
    if policy_el is None:
        raise ParseError(f"{label}: missing <policy_published> element")

    try:
        metadata = _parse_metadata(metadata_el)
        policy = _parse_policy(policy_el)
        records = tuple(_parse_record(el) for el in _children(feedback, "record"))
    except (ValueError, OverflowError, OSError) as exc:
        raise ParseError(f"{label}: {exc}") from exc

    return Report(report_metadata=metadata, policy_published=policy, records=records)


def _decompress(data: bytes, label: str) -> bytes:
    if data.startswith(GZIP_MAGIC):
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise ParseError(f"{label}: invalid gzip data: {exc}") from exc
    if data.startswith(ZIP_MAGIC):
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names = archive.namelist()
                if not names:
                    raise ParseError(f"{label}: empty zip archive")
                xml_names = [name for name in names if name.lower().endswith(".xml")]
                return archive.read(xml_names[0] if xml_names else names[0])
        except (
            zipfile.BadZipFile,
            zlib.error,
            RuntimeError,
            NotImplementedError,
            EOFError,
        ) as exc:
            raise ParseError(f"{label}: invalid zip data: {exc}") from exc
    return data


def _parse_metadata(element: Element) -> ReportMetadata:
    date_range_el = _child(element, "date_range")
    if date_range_el is None:
        raise ValueError("missing <date_range> element")
    date_range = DateRange(
        begin=_timestamp(_text(date_range_el, "begin")),
        end=_timestamp(_text(date_range_el, "end")),
    )
    return ReportMetadata(
        org_name=_text(element, "org_name"),
        email=_text(element, "email"),
        report_id=_text(element, "report_id"),
        date_range=date_range,
        extra_contact_info=_text(element, "extra_contact_info"),
        errors=tuple(el.text.strip() for el in _children(element, "error") if el.text),
    )


def _parse_policy(element: Element) -> PolicyPublished:
    pct = _text(element, "pct")
    return PolicyPublished(
        domain=_text(element, "domain"),
        adkim=_text(element, "adkim"),
        aspf=_text(element, "aspf"),
        p=_text(element, "p"),
        sp=_text(element, "sp"),
        pct=int(pct) if pct else None,
        fo=_text(element, "fo"),
    )


def _parse_record(element: Element) -> Record:
    row = _child(element, "row")
    if row is None:
        raise ValueError("record without <row> element")
    evaluated = _child(row, "policy_evaluated")
    identifiers = _child(element, "identifiers")
    auth_results = _child(element, "auth_results")

    dkim: list[DKIMAuthResult] = []
    spf: list[SPFAuthResult] = []
    if auth_results is not None:
        for el in _children(auth_results, "dkim"):
            dkim.append(
                DKIMAuthResult(
                    domain=_text(el, "domain"),
                    selector=_text(el, "selector"),
                    result=_text(el, "result"),
                )
            )
        for el in _children(auth_results, "spf"):
            spf.append(
                SPFAuthResult(
                    domain=_text(el, "domain"),
                    scope=_text(el, "scope"),
                    result=_text(el, "result"),
                )
            )

    count = _text(row, "count")
    return Record(
        source_ip=_text(row, "source_ip"),
        count=int(count) if count else 0,
        disposition=_text(evaluated, "disposition"),
        eval_dkim=_text(evaluated, "dkim"),
        eval_spf=_text(evaluated, "spf"),
        header_from=_text(identifiers, "header_from"),
        envelope_from=_text(identifiers, "envelope_from"),
        envelope_to=_text(identifiers, "envelope_to"),
        dkim=tuple(dkim),
        spf=tuple(spf),
    )


def _with_hostnames(report: Report, lookup_limit: int) -> Report:
    addresses = sorted({record.source_ip for record in report.records if record.source_ip})
    if not addresses:
        return report
    with ThreadPoolExecutor(max_workers=max(1, lookup_limit)) as pool:
        hostnames = dict(zip(addresses, pool.map(_lookup, addresses)))
    records = tuple(
        replace(record, source_hostname=hostnames.get(record.source_ip, ""))
        for record in report.records
    )
    return replace(report, records=records)


def _lookup(address: str) -> str:
    try:
        hostname, _aliases, _addresses = socket.gethostbyaddr(address)
    except (OSError, UnicodeError) as exc:
        LOGGER.debug("Reverse lookup failed for %s: %s", address, exc)
        return ""
    return hostname.rstrip(".")


def _timestamp(value: str) -> datetime:
    if not value:
        raise ValueError("empty date_range timestamp")
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: Element, name: str) -> Iterable[Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: Element | None, name: str) -> Element | None:
    if element is None:
        return None
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _text(element: Element | None, name: str) -> str:
    child = _child(element, name)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


__all__ = ["ParseError", "parse_report", "read_parse"]
