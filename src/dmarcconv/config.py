"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import jinja2
import yaml

from .templates import (
    DEFAULT_MERGE_KEY,
    HTML_STATIC_TEMPLATE,
    HTML_TEMPLATE,
    TXT_TEMPLATE,
    compile_template,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/dmarcconv/config.yaml")
DEFAULT_LOOKUP_LIMIT = 50
STDOUT_TARGET = "stdout"


class ConfigError(ValueError):
    """Raised when configuration is invalid or missing."""


class SetupError(RuntimeError):
    """Raised when configured storage cannot be prepared."""


class ImapSecurity(str, Enum):
    """Connection security for input.imap."""

    TLS = "tls"
    STARTTLS = "starttls"
    PLAINTEXT = "plaintext"


class OutputFormat(str, Enum):
    """Supported output formats."""

    TXT = "txt"
    HTML = "html"
    HTML_STATIC = "html_static"
    EXTERNAL_TEMPLATE = "external_template"
    JSON = "json"

    def autoescape(self, external_template: Path | None = None) -> bool:
        """Whether report values are HTML-escaped in the body template."""

        if self is OutputFormat.EXTERNAL_TEMPLATE:
            return external_template is not None and _HTML_TEMPLATE(external_template.name)
        return self in (OutputFormat.HTML, OutputFormat.HTML_STATIC)

    def template_source(self, external_template: Path | None) -> str | None:
        """Return the body template text for this format (None for json)."""

        return _TEMPLATE_SOURCES[self](external_template)


def _read_external_template(path: Path | None) -> str:
    if path is None:
        raise ConfigError(
            "'output.external_template' must be configured to use external_template output."
        )
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read external template {path}: {exc}") from exc


_HTML_TEMPLATE = jinja2.select_autoescape(enabled_extensions=("html", "htm"))

_TEMPLATE_SOURCES = {
    OutputFormat.TXT: lambda _path: TXT_TEMPLATE,
    OutputFormat.HTML: lambda _path: HTML_TEMPLATE,
    OutputFormat.HTML_STATIC: lambda _path: HTML_STATIC_TEMPLATE,
    OutputFormat.EXTERNAL_TEMPLATE: _read_external_template,
    OutputFormat.JSON: lambda _path: None,
}


@dataclass(frozen=True)
class ImapConfig:
    """Mail server settings (input.imap)."""

    server: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    mailbox: str = ""
    debug: bool = False
    delete: bool = False
    security: ImapSecurity = ImapSecurity.TLS

    @property
    def is_configured(self) -> bool:
        return bool(self.server)


@dataclass(frozen=True)
class InputConfig:
    dir: Path
    imap: ImapConfig
    delete: bool = False
    archive_dir: Path | None = None


@dataclass(frozen=True)
class OutputConfig:
    file: str
    format: OutputFormat
    template: str | None
    assets_path: str
    external_template: Path | None
    body_template: jinja2.Template | None = field(default=None, compare=False, repr=False)
    filename_template: jinja2.Template | None = field(default=None, compare=False, repr=False)

    @property
    def is_stdout(self) -> bool:
        return is_stdout_target(self.file)


@dataclass(frozen=True)
class Config:
    """Fully parsed configuration."""

    input: InputConfig
    output: OutputConfig
    lookup_addr: bool
    lookup_limit: int
    merge_reports: bool
    merge_key: str
    merge_key_template: jinja2.Template = field(compare=False, repr=False)
    log_debug: bool = False
    log_datetime: bool = False


def is_stdout_target(value: str) -> bool:
    return value in ("", STDOUT_TARGET)


def load_config(path: Path | str | None = None) -> Config:
    """Load, validate and compile configuration from YAML."""

    config_path = _resolve_config_path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read config {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping.")

    config = _parse_config(raw)
    ensure_archive_dir(config.input)
    return config


def ensure_archive_dir(input_config: InputConfig) -> None:
    """Create the archive directory if one is configured."""

    if input_config.archive_dir is None:
        return
    try:
        input_config.archive_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        raise SetupError(
            f"Unable to create archive directory {input_config.archive_dir}: {exc}"
        ) from exc


def _resolve_config_path(explicit: Path | str | None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    env_path = os.environ.get("DMARCCONV_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def _parse_config(raw: dict[str, Any]) -> Config:
    lookup_limit = _parse_lookup_limit(raw.get("lookup_limit"))
    input_config = _parse_input(_section(raw, "input"))
    output_raw = _section(raw, "output")
    merge_key = raw.get("merge_key") or DEFAULT_MERGE_KEY
    if not isinstance(merge_key, str):
        raise ConfigError("merge_key must be a string.")
    output_config = _parse_output(output_raw)
    return Config(
        input=input_config,
        output=output_config,
        lookup_addr=bool(raw.get("lookup_addr", False)),
        lookup_limit=lookup_limit,
        merge_reports=bool(raw.get("merge_reports", False)),
        merge_key=merge_key,
        merge_key_template=_compile(merge_key, "merge_key"),
        log_debug=bool(raw.get("log_debug", False)),
        log_datetime=bool(raw.get("log_datetime", False)),
    )


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping.")
    return value


def _parse_lookup_limit(value: Any) -> int:
    if value is None:
        return DEFAULT_LOOKUP_LIMIT
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError("lookup_limit must be an integer.")
    if value < 1:
        return DEFAULT_LOOKUP_LIMIT
    return value


def _parse_input(raw: dict[str, Any]) -> InputConfig:
    dir_value = raw.get("dir")
    if not dir_value:
        raise ConfigError("input.dir is not configured.")

    delete = bool(raw.get("delete", False))
    archive_value = raw.get("archive_dir")
    if delete and archive_value:
        raise ConfigError("input.delete and input.archive_dir are mutually exclusive.")

    input_dir = _normalize_path(dir_value)
    archive_dir = _normalize_path(archive_value) if archive_value else None
    if archive_dir is not None and input_dir == archive_dir:
        raise ConfigError("input.dir and input.archive_dir are the same location.")

    imap_raw = raw.get("imap")
    if imap_raw is not None and not isinstance(imap_raw, dict):
        raise ConfigError("input.imap must be a mapping.")

    return InputConfig(
        dir=input_dir,
        imap=_parse_imap(imap_raw or {}),
        delete=delete,
        archive_dir=archive_dir,
    )


def _parse_imap(raw: dict[str, Any]) -> ImapConfig:
    security_value = str(raw.get("security") or ImapSecurity.TLS.value).strip().lower()
    try:
        security = ImapSecurity(security_value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in ImapSecurity)
        raise ConfigError(f"'input.imap.security' must be one of: {allowed}") from exc
    return ImapConfig(
        server=str(raw.get("server") or ""),
        username=str(raw.get("username") or ""),
        password=str(raw.get("password") or ""),
        mailbox=str(raw.get("mailbox") or ""),
        debug=bool(raw.get("debug", False)),
        delete=bool(raw.get("delete", False)),
        security=security,
    )


def _parse_output(raw: dict[str, Any]) -> OutputConfig:
    file_value = str(raw.get("file") or "")
    format_value = str(raw.get("format") or OutputFormat.TXT.value).strip()
    try:
        output_format = OutputFormat(format_value)
    except ValueError as exc:
        raise ConfigError(f"Unsupported output.format '{format_value}'.") from exc

    external_value = raw.get("external_template")
    external_template = _normalize_path(external_value) if external_value else None
    template = output_format.template_source(external_template)

    body_template = None
    if template is not None:
        body_template = _compile(
            template,
            "output template",
            autoescape=output_format.autoescape(external_template),
        )

    filename_template = None
    if not is_stdout_target(file_value):
        filename_template = _compile(file_value, "output.file")

    return OutputConfig(
        file=file_value,
        format=output_format,
        template=template,
        assets_path=str(raw.get("assets_path") or "./assets"),
        external_template=external_template,
        body_template=body_template,
        filename_template=filename_template,
    )


def _compile(source: str, name: str, *, autoescape: bool = False) -> jinja2.Template:
    try:
        return compile_template(source, autoescape=autoescape)
    except jinja2.TemplateSyntaxError as exc:
        raise ConfigError(f"Invalid {name}: {exc}") from exc


def _normalize_path(value: Any) -> Path:
    return Path(os.path.normpath(os.path.expanduser(str(value))))


__all__ = [
    "Config",
    "ConfigError",
    "ImapConfig",
    "ImapSecurity",
    "InputConfig",
    "OutputConfig",
    "OutputFormat",
    "SetupError",
    "ensure_archive_dir",
    "is_stdout_target",
    "load_config",
    "DEFAULT_LOOKUP_LIMIT",
]
