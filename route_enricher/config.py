from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigError(ValueError):
    """Raised when the run configuration is missing or invalid."""


MAIL_WHEN_VALUES = ("Never", "Always", "OnError", "OnErrorOrAction")
DEFAULT_ROUTING_URL = "https://router.project-osrm.org/route/v1"
DEFAULT_FILE_PATTERNS = ("*.xlsx", "*.xlsm")

_COLUMN_RE = re.compile(r"^[A-Z]{1,3}$")


@dataclass
class ColumnConfig:
    start_destination: str
    coordinates: str
    distance: str
    duration: str


@dataclass
class FolderConfig:
    drop: Path
    archive: Optional[Path] = None


@dataclass
class RoutingConfig:
    base_url: str = DEFAULT_ROUTING_URL
    profile: str = "driving"
    timeout_seconds: float = 30.0


@dataclass
class LogConfig:
    folder: Optional[Path] = None
    extensions: List[str] = field(default_factory=lambda: ["csv"])
    retention_days: Optional[int] = None
    append: bool = True
    system_errors: bool = True
    all_actions: bool = True
    only_action_errors: bool = False

    @property
    def enabled(self) -> bool:
        return self.system_errors or self.all_actions or self.only_action_errors


@dataclass
class EventLogConfig:
    enabled: bool = False
    log_name: str = "Application"
    source: str = "RouteEnricher"


@dataclass
class SmtpConfig:
    server: Optional[str] = None
    port: int = 25
    use_ssl: bool = False
    use_starttls: bool = False
    username: Optional[str] = None
    password_env: Optional[str] = None


@dataclass
class MailConfig:
    when: str = "Never"
    sender: Optional[str] = None
    to: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    subject: str = "Route enrichment report"
    message: str = ""
    max_attachment_bytes: int = 10 * 1024 * 1024
    smtp: SmtpConfig = field(default_factory=SmtpConfig)


@dataclass
class Config:
    worksheet: str
    columns: ColumnConfig
    folders: FolderConfig
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    log: LogConfig = field(default_factory=LogConfig)
    event_log: EventLogConfig = field(default_factory=EventLogConfig)
    mail: MailConfig = field(default_factory=MailConfig)
    file_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_FILE_PATTERNS))
    distance_format: str = "0.00"
    duration_format: str = "0"


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


def _as_path(value: Any) -> Optional[Path]:
    if value is None or str(value).strip() == "":
        return None
    return Path(str(value)).expanduser()


def _normalize_when(value: Any) -> str:
    text = str(value or "Never").strip()
    for known in MAIL_WHEN_VALUES:
        if text.lower() == known.lower():
            return known
    # Unknown values are kept so the notification step can report them
    return text


def config_from_dict(data: Dict[str, Any]) -> Config:
    """Build and validate a Config from already-parsed YAML/JSON data."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    missing: List[str] = []
    worksheet = str(data.get("worksheet") or "").strip()
    if not worksheet:
        missing.append("worksheet")

    cols = data.get("columns") or {}
    col_values: Dict[str, str] = {}
    for key in ("start_destination", "coordinates", "distance", "duration"):
        raw = str(cols.get(key) or "").strip().upper()
        if not raw:
            missing.append(f"columns.{key}")
        elif not _COLUMN_RE.match(raw):
            raise ConfigError(f"columns.{key} must be a column letter, got {cols.get(key)!r}")
        col_values[key] = raw

    folders = data.get("folders") or {}
    drop = _as_path(folders.get("drop"))
    if drop is None:
        missing.append("folders.drop")

    log_data = data.get("log") or {}
    log = LogConfig(
        folder=_as_path(log_data.get("folder")),
        extensions=_as_list(log_data.get("extensions", ["csv"])),
        retention_days=(int(log_data["retention_days"]) if log_data.get("retention_days") is not None else None),
        append=bool(log_data.get("append", True)),
        system_errors=bool(log_data.get("system_errors", True)),
        all_actions=bool(log_data.get("all_actions", True)),
        only_action_errors=bool(log_data.get("only_action_errors", False)),
    )
    if log.enabled and log.folder is None:
        missing.append("log.folder")
    if log.retention_days is not None and log.retention_days < 1:
        raise ConfigError("log.retention_days must be at least 1")
    if log.enabled and not log.extensions:
        raise ConfigError("log.extensions must list at least one format")

    if missing:
        raise ConfigError("Missing required configuration: " + ", ".join(missing))

    routing_data = data.get("routing") or {}
    ev = data.get("event_log") or {}
    mail_data = data.get("send_mail") or {}
    smtp_data = mail_data.get("smtp") or {}

    return Config(
        worksheet=worksheet,
        columns=ColumnConfig(**col_values),
        folders=FolderConfig(drop=drop, archive=_as_path(folders.get("archive"))),
        routing=RoutingConfig(
            base_url=str(routing_data.get("base_url", DEFAULT_ROUTING_URL)).rstrip("/"),
            profile=str(routing_data.get("profile", "driving")),
            timeout_seconds=float(routing_data.get("timeout_seconds", 30.0)),
        ),
        log=log,
        event_log=EventLogConfig(
            enabled=bool(ev.get("enabled", False)),
            log_name=str(ev.get("log_name", "Application")),
            source=str(ev.get("source", "RouteEnricher")),
        ),
        mail=MailConfig(
            when=_normalize_when(mail_data.get("when")),
            sender=mail_data.get("sender"),
            to=_as_list(mail_data.get("to")),
            bcc=_as_list(mail_data.get("bcc")),
            subject=str(mail_data.get("subject", "Route enrichment report")),
            message=str(mail_data.get("message", "")),
            max_attachment_bytes=int(mail_data.get("max_attachment_bytes", 10 * 1024 * 1024)),
            smtp=SmtpConfig(
                server=smtp_data.get("server"),
                port=int(smtp_data.get("port", 25)),
                use_ssl=bool(smtp_data.get("use_ssl", False)),
                use_starttls=bool(smtp_data.get("use_starttls", False)),
                username=smtp_data.get("username"),
                password_env=smtp_data.get("password_env"),
            ),
        ),
        file_patterns=_as_list(data.get("file_patterns")) or list(DEFAULT_FILE_PATTERNS),
        distance_format=str(data.get("distance_format", "0.00")),
        duration_format=str(data.get("duration_format", "0")),
    )


def load_config(path: str | Path) -> Config:
    """Load a Config from a YAML or JSON file."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {p}: {e}") from e
    return config_from_dict(data)


def find_default_config() -> Optional[Path]:
    """Look for `config.yaml`, `config.yml` or `config.json` in CWD, then the project root."""
    names = ("config.yaml", "config.yml", "config.json")
    roots = [Path.cwd(), Path(__file__).resolve().parent.parent]
    for root in roots:
        for name in names:
            p = root / name
            if p.exists():
                return p
    return None
