from __future__ import annotations

import gzip
import io
import socket
import zipfile
from datetime import datetime, timezone

import pytest

from dmarcconv import parser as parser_module
from dmarcconv.parser import ParseError, parse_report, read_parse
from tests.conftest import report_xml, zip_report


def _source(data: bytes) -> io.BytesIO:
    return io.BytesIO(data)


def test_parse_plain_xml() -> None:
    report = read_parse(_source(report_xml().encode()), "plain.xml")

    metadata = report.report_metadata
    assert metadata.org_name == "Example"
    assert metadata.email == "dmarc@example.com"
    assert metadata.report_id == "r-1"
    assert metadata.date_range.begin == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert report.policy_published.domain == "example.com"
    assert report.policy_published.pct == 100
    record = report.records[0]
    assert record.source_ip == "192.0.2.1"
    assert record.count == 3
    assert record.eval_dkim == "pass"
    assert record.dkim[0].selector == "s1"
    assert record.spf[0].scope == "mfrom"
    assert record.source_hostname == ""


def test_parse_gzip_report() -> None:
    data = gzip.compress(report_xml(report_id="gz-1").encode())

    report = read_parse(_source(data), "report.xml.gz")

    assert report.report_metadata.report_id == "gz-1"


def test_parse_zip_report_prefers_xml_member() -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("README.txt", "ignore me")
        archive.writestr("report.xml", report_xml(report_id="zip-1"))

    report = read_parse(_source(buffer.getvalue()), "report.zip")

    assert report.report_metadata.report_id == "zip-1"


def test_parse_namespaced_report() -> None:
    xml = report_xml().replace("<feedback>", '<feedback xmlns="urn:ietf:params:xml:ns:dmarc-2.0">')

    report = parse_report(xml.encode())

    assert report.report_metadata.org_name == "Example"


@pytest.mark.parametrize(
    "flag_bits, compress_type",
    [
        (0x1, None),
        (0, 9),
    ],
    ids=["encrypted", "deflate64"],
)
def test_unreadable_zip_member_raises_parse_error(flag_bits: int, compress_type: int | None) -> None:
    data = zip_report(flag_bits=flag_bits, compress_type=compress_type)

    with pytest.raises(ParseError) as excinfo:
        read_parse(_source(data), "locked.zip")

    assert "locked.zip: invalid zip data" in str(excinfo.value)


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"not xml at all", "invalid XML"),
        (b"<other/>", "missing <feedback>"),
        (b"<feedback><policy_published/></feedback>", "missing <report_metadata>"),
        (
            b"<feedback><report_metadata><date_range><begin>1</begin><end>2</end>"
            b"</date_range></report_metadata></feedback>",
            "missing <policy_published>",
        ),
        (
            b"<feedback><report_metadata><date_range><begin>x</begin><end>2</end>"
            b"</date_range></report_metadata><policy_published/></feedback>",
            "invalid literal",
        ),
        (b"\x1f\x8bbroken", "invalid gzip data"),
        (b"PK\x03\x04broken", "invalid zip data"),
    ],
)
def test_parse_errors_name_the_source(data: bytes, expected: str) -> None:
    with pytest.raises(ParseError) as excinfo:
        read_parse(_source(data), "bad-file.xml")

    assert "bad-file.xml" in str(excinfo.value)
    assert expected in str(excinfo.value)


def test_entity_expansion_is_rejected() -> None:
    payload = (
        b'<?xml version="1.0"?><!DOCTYPE feedback [<!ENTITY a "aaaa">]>'
        b"<feedback>&a;</feedback>"
    )

    with pytest.raises(ParseError):
        read_parse(_source(payload), "bomb.xml")


def test_lookup_addr_resolves_hostnames(monkeypatch: pytest.MonkeyPatch) -> None:
    looked_up: list[str] = []

    def fake_gethostbyaddr(address: str):
        looked_up.append(address)
        return ("mail.example.com.", [], [address])

    monkeypatch.setattr(parser_module.socket, "gethostbyaddr", fake_gethostbyaddr)

    report = read_parse(_source(report_xml().encode()), "r.xml", lookup_addr=True, lookup_limit=2)

    assert looked_up == ["192.0.2.1"]
    assert report.records[0].source_hostname == "mail.example.com"


def test_lookup_failure_leaves_hostname_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing(_address: str):
        raise socket.herror("unknown host")

    monkeypatch.setattr(parser_module.socket, "gethostbyaddr", failing)

    report = read_parse(_source(report_xml().encode()), "r.xml", lookup_addr=True)

    assert report.records[0].source_hostname == ""
