from __future__ import annotations

import io
import struct
import textwrap
import zipfile
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path

from dmarcconv.types import DateRange, PolicyPublished, Record, Report, ReportMetadata


def report_xml(
    *,
    org_name: str = "Example",
    email: str = "dmarc@example.com",
    report_id: str = "r-1",
    domain: str = "example.com",
    source_ip: str = "192.0.2.1",
    count: int = 3,
) -> str:
    """Return a minimal aggregate report document."""

    return textwrap.dedent(
        f"""\
        <?xml version="1.0" encoding="UTF-8"?>
        <feedback>
          <report_metadata>
            <org_name>{org_name}</org_name>
            <email>{email}</email>
            <report_id>{report_id}</report_id>
            <date_range>
              <begin>1700000000</begin>
              <end>1700086400</end>
            </date_range>
          </report_metadata>
          <policy_published>
            <domain>{domain}</domain>
            <adkim>r</adkim>
            <aspf>r</aspf>
            <p>none</p>
            <sp>none</sp>
            <pct>100</pct>
          </policy_published>
          <record>
            <row>
              <source_ip>{source_ip}</source_ip>
              <count>{count}</count>
              <policy_evaluated>
                <disposition>none</disposition>
                <dkim>pass</dkim>
                <spf>fail</spf>
              </policy_evaluated>
            </row>
            <identifiers>
              <header_from>{domain}</header_from>
            </identifiers>
            <auth_results>
              <dkim>
                <domain>{domain}</domain>
                <selector>s1</selector>
                <result>pass</result>
              </dkim>
              <spf>
                <domain>{domain}</domain>
                <scope>mfrom</scope>
                <result>fail</result>
              </spf>
            </auth_results>
          </record>
        </feedback>
        """
    )


def build_report(
    *,
    org_name: str = "Example",
    email: str = "dmarc@example.com",
    domain: str = "example.com",
    report_id: str = "r-1",
    begin: int = 1700000000,
    end: int = 1700086400,
    records: tuple[Record, ...] | None = None,
) -> Report:
    if records is None:
        records = (
            Record(
                source_ip="192.0.2.1",
                count=3,
                disposition="none",
                eval_dkim="pass",
                eval_spf="fail",
                header_from=domain,
            ),
        )
    return Report(
        report_metadata=ReportMetadata(
            org_name=org_name,
            email=email,
            report_id=report_id,
            date_range=DateRange(
                begin=datetime.fromtimestamp(begin, tz=timezone.utc),
                end=datetime.fromtimestamp(end, tz=timezone.utc),
            ),
        ),
        policy_published=PolicyPublished(domain=domain, p="none"),
        records=records,
    )


def write_report_message(path: Path, *, filename: str = "report.xml", xml: str | None = None) -> Path:
    """Write an RFC822 message carrying a report attachment."""

    message = EmailMessage()
    message["From"] = "noreply-dmarc@example.net"
    message["To"] = "dmarc@example.com"
    message["Subject"] = "Report domain: example.com"
    message.set_content("DMARC aggregate report attached.")
    message.add_attachment(
        (xml or report_xml()).encode("utf-8"),
        maintype="application",
        subtype="xml",
        filename=filename,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(message.as_bytes())
    return path


def write_config(tmp_path: Path, content: str) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(textwrap.dedent(content), encoding="utf-8")
    return config_path


def zip_report(xml: str | None = None, *, flag_bits: int = 0, compress_type: int | None = None) -> bytes:
    """Zip a report; *flag_bits* and *compress_type* patch its central directory entry."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("report.xml", xml or report_xml())
    data = bytearray(buffer.getvalue())
    entry = data.index(b"PK\x01\x02")
    if flag_bits:
        (flags,) = struct.unpack_from("<H", data, entry + 8)
        struct.pack_into("<H", data, entry + 8, flags | flag_bits)
    if compress_type is not None:
        struct.pack_into("<H", data, entry + 10, compress_type)
    return bytes(data)
