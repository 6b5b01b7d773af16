from __future__ import annotations

import gzip
import io
import zipfile
from email.message import EmailMessage
from pathlib import Path

import pytest

from tests.conftest import report_xml


def gzip_report_message(path: Path, *, report_id: str, org_name: str = "Google") -> Path:
    """Write a message whose only part is a gzip-compressed report."""

    message = EmailMessage()
    message["From"] = "noreply-dmarc-support@example.net"
    message["To"] = "dmarc@example.com"
    message["Subject"] = f"Report domain: example.com Report-ID: {report_id}"
    message.set_content(
        gzip.compress(report_xml(report_id=report_id, org_name=org_name).encode("utf-8")),
        maintype="application",
        subtype="gzip",
        filename=f"{org_name.lower()}!example.com!{report_id}.xml.gz",
    )
    path.write_bytes(message.as_bytes())
    return path


def zip_report(path: Path, *, report_id: str, org_name: str) -> Path:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{report_id}.xml", report_xml(report_id=report_id, org_name=org_name))
    path.write_bytes(buffer.getvalue())
    return path


@pytest.fixture
def report_dir(tmp_path: Path) -> Path:
    """Input directory holding a realistic mix of deliveries."""

    directory = tmp_path / "incoming"
    directory.mkdir()
    gzip_report_message(directory / "first.eml", report_id="g-1")
    gzip_report_message(directory / "second.eml", report_id="g-2")
    zip_report(directory / "outlook.zip", report_id="o-1", org_name="Outlook")
    (directory / "notes.txt").write_text("not a report", encoding="utf-8")
    (directory / "old").mkdir()
    (directory / "old" / "nested.xml").write_text(report_xml(report_id="n-1"), encoding="utf-8")
    return directory
