"""Directory conversion: find, convert, merge, write, then clean up sources."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import BinaryIO, Protocol

import jinja2

from .config import Config
from .extractor import ExtractionError, extract_attachment
from .merge import group_merge_reports
from .mover import Disposition, MoverError, SourceMover
from .output import Output
from .parser import ParseError, read_parse
from .types import Report, SourceFile

LOGGER = logging.getLogger(__name__)

EML_SUFFIX = ".eml"


class ReportWriter(Protocol):
    def render(self, report: Report) -> object: ...


Extractor = Callable[[BinaryIO, Path], bool]
Parser = Callable[[BinaryIO, str, bool, int], Report]
Merger = Callable[[Sequence[Report], jinja2.Template], list[Report]]


class FilesConverter:
    """Converts every report found in ``input.dir`` in a single run.

    Extraction and parse failures only skip the affected file. Merge and
    write failures end the run, and sources are deleted or archived only
    after every report was written.
    """

    def __init__(
        self,
        config: Config,
        *,
        extractor: Extractor = extract_attachment,
        parser: Parser = read_parse,
        merger: Merger = group_merge_reports,
        output_factory: Callable[[Config], ReportWriter] = Output,
        mover: SourceMover | None = None,
    ) -> None:
        self._config = config
        self._input_dir = config.input.dir
        self._extractor = extractor
        self._parser = parser
        self._merger = merger
        self._output_factory = output_factory
        self._mover = mover or SourceMover(config.input)
        self._files: list[SourceFile] = []
        self._reports: list[Report] = []
        self._input_dir.mkdir(mode=0o775, parents=True, exist_ok=True)

    @property
    def files(self) -> list[SourceFile]:
        return list(self._files)

    @property
    def parsed_files(self) -> list[SourceFile]:
        return [source for source in self._files if source.parsed]

    @property
    def reports(self) -> list[Report]:
        return list(self._reports)

    def convert_write(self) -> None:
        """Run the whole conversion; raises on merge or write failure."""

        self.find()
        self.convert()
        if self._config.merge_reports:
            self.merge()
        self.write()
        self.cleanup()

    def find(self) -> None:
        """Extract attachments from messages, then collect candidate files."""

        messages = sorted(path for path in self._input_dir.glob(f"*{EML_SUFFIX}") if path.is_file())
        if messages:
            LOGGER.info(
                "Found %d eml file(s), extracting attachments to %s",
                len(messages),
                self._input_dir,
            )
        for message in messages:
            self._extract(message)

        candidates: list[Path] = []
        with os.scandir(self._input_dir) as entries:
            for entry in entries:
                if entry.is_dir():
                    continue
                path = Path(entry.path)
                if path.suffix != EML_SUFFIX:
                    candidates.append(path)

        candidates.sort()
        LOGGER.info("Found %d input file(s) in %s", len(candidates), self._input_dir)
        self._files = [SourceFile(path=path) for path in candidates]
        self._reports = []

    def convert(self) -> None:
        """Parse every candidate; unreadable or invalid files are skipped."""

        for source in self._files:
            source.report = None
            try:
                with source.path.open("rb") as handle:
                    source.report = self._parser(
                        handle,
                        str(source.path),
                        self._config.lookup_addr,
                        self._config.lookup_limit,
                    )
            except (OSError, ParseError) as exc:
                LOGGER.error("Unable to parse %s: %s, skip", source.path, exc)
                continue
        self._reports = [source.report for source in self._files if source.report is not None]
        LOGGER.info("Parsed %d of %d input file(s)", len(self._reports), len(self._files))

    def merge(self) -> None:
        """Replace the report list with merged reports; source records stay as they are."""

        before = len(self._reports)
        self._reports = self._merger(self._reports, self._config.merge_key_template)
        LOGGER.info("Merged %d report(s) into %d", before, len(self._reports))

    def write(self) -> None:
        for report in self._reports:
            writer = self._output_factory(self._config)
            writer.render(report)

    def cleanup(self) -> None:
        """Delete or archive every successfully parsed source file."""

        if self._mover.policy is Disposition.KEPT:
            return
        for source in self.parsed_files:
            self._dispose(source.path)

    def _extract(self, message: Path) -> None:
        try:
            with message.open("rb") as handle:
                extracted = self._extractor(handle, self._input_dir)
        except (OSError, ExtractionError) as exc:
            LOGGER.error("Unable to extract attachments from %s: %s, skip", message, exc)
            return
        if not extracted:
            LOGGER.warning("No report attachment found in %s", message)
            return
        self._dispose_extracted_message(message)

    def _dispose_extracted_message(self, message: Path) -> None:
        # Runs right after extraction, independent of the later parse/write outcome.
        self._dispose(message)

    def _dispose(self, path: Path) -> None:
        try:
            action = self._mover.dispose(path)
        except MoverError as exc:
            LOGGER.error("%s, skip", exc)
            return
        if action is not Disposition.KEPT:
            LOGGER.info("Source %s %s", path, action.value)


__all__ = ["FilesConverter"]
