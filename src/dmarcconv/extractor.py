"""Extract DMARC report attachments from RFC822 messages."""

from __future__ import annotations

import logging
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from pathlib import Path
from typing import BinaryIO

LOGGER = logging.getLogger(__name__)

REPORT_SUFFIXES = (".xml", ".gz", ".zip")
REPORT_CONTENT_TYPES = frozenset(
    {
        "application/zip",
        "application/x-zip-compressed",
        "application/gzip",
        "application/x-gzip",
        "application/xml",
        "text/xml",
    }
)


class ExtractionError(RuntimeError):
    """Raised when a message cannot be read or its attachment cannot be saved."""


def extract_attachment(source: BinaryIO, destination_dir: Path) -> bool:
    """Write every report attachment of *source* into *destination_dir*.

    Returns False when the message carries no report attachment.
    """

    try:
        message = BytesParser(policy=policy.default).parse(source)
    except (OSError, ValueError) as exc:
        raise ExtractionError(f"Unable to parse message: {exc}") from exc

    if not isinstance(message, EmailMessage):
        raise ExtractionError("Unable to parse message.")

    extracted = 0
    for index, part in enumerate(message.walk()):
        if part.is_multipart() or not _is_report_part(part):
            continue
        payload = part.get_payload(decode=True)
        if not payload:
            LOGGER.debug("Skipping empty attachment part %d", index)
            continue
        target = destination_dir / _attachment_name(part, index)
        try:
            target.write_bytes(payload)
        except OSError as exc:
            raise ExtractionError(f"Unable to save attachment {target}: {exc}") from exc
        LOGGER.debug("Extracted attachment %s", target)
        extracted += 1

    return extracted > 0


def _is_report_part(part: EmailMessage) -> bool:
    filename = (part.get_filename() or "").lower()
    if filename.endswith(REPORT_SUFFIXES):
        return True
    return part.get_content_type() in REPORT_CONTENT_TYPES


def _attachment_name(part: EmailMessage, index: int) -> str:
    # Base name only; a crafted filename must not escape the destination.
    raw = part.get_filename() or ""
    name = Path(raw.replace("\\", "/")).name.strip()
    if name and name not in (".", ".."):
        return name
    suffix = ".zip" if "zip" in part.get_content_type() else ".xml"
    if "gzip" in part.get_content_type():
        suffix = ".xml.gz"
    return f"attachment-{index}{suffix}"


__all__ = ["ExtractionError", "extract_attachment"]
