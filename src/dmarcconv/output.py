"""Render a report and persist it to stdout or a file."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TextIO

import jinja2

from .config import Config, OutputFormat
from .templates import template_context
from .types import Report

LOGGER = logging.getLogger(__name__)


class OutputError(RuntimeError):
    """Raised when a report cannot be rendered or written."""


class Output:
    """Writes one report according to the output configuration."""

    def __init__(self, config: Config, *, stream: TextIO | None = None) -> None:
        self._config = config
        self._output = config.output
        self._stream = stream

    def render(self, report: Report) -> Path | None:
        """Render *report*; returns the written path, or None for stdout."""

        body = self.render_body(report)
        if self._output.is_stdout:
            stream = self._stream if self._stream is not None else sys.stdout
            stream.write(body)
            stream.flush()
            return None

        path = self.render_filename(report)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(body, encoding="utf-8")
        except OSError as exc:
            raise OutputError(f"Unable to write report to {path}: {exc}") from exc
        LOGGER.info("Wrote report %s to %s", report.report_metadata.report_id, path)
        return path

    def render_body(self, report: Report) -> str:
        if self._output.format is OutputFormat.JSON:
            return json.dumps(report.to_dict(), indent=2) + "\n"
        template = self._output.body_template
        if template is None:
            raise OutputError(f"No template compiled for format {self._output.format.value}")
        try:
            return template.render(template_context(report, assets_path=self._output.assets_path))
        except (jinja2.TemplateError, TypeError, ValueError, ArithmeticError) as exc:
            raise OutputError(
                f"Unable to render report {report.report_metadata.report_id}: {exc}"
            ) from exc

    def render_filename(self, report: Report) -> Path:
        template = self._output.filename_template
        if template is None:
            raise OutputError("Output file template is not configured.")
        try:
            name = template.render(template_context(report)).strip()
        except (jinja2.TemplateError, TypeError, ValueError, ArithmeticError) as exc:
            raise OutputError(f"Unable to render output file name: {exc}") from exc
        if not name:
            raise OutputError("Output file name rendered empty.")
        return Path(name).expanduser()


__all__ = ["Output", "OutputError"]
