from __future__ import annotations

import html
import mimetypes
import os
import re
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import FolderConfig, MailConfig, SmtpConfig
from .logging_utils import get_logger
from .models import RunContext

logger = get_logger(__name__)

_EMAIL_RE = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")


class MailError(RuntimeError):
    """The mail could not be built or sent."""


class UnknownMailTriggerError(ValueError):
    """send_mail.when has a value outside the decision table."""


def should_send(when: str, system_error_count: int, pair_error_count: int, pair_count: int) -> bool:
    """Decision table for sending the run report.

    | when            | send when                                   |
    |-----------------|---------------------------------------------|
    | Never           | never                                       |
    | Always          | always                                      |
    | OnError         | any system error or any pair error          |
    | OnErrorOrAction | OnError, or at least one pair was produced  |
    """
    on_error = system_error_count > 0 or pair_error_count > 0
    if when == "Never":
        return False
    if when == "Always":
        return True
    if when == "OnError":
        return on_error
    if when == "OnErrorOrAction":
        return on_error or pair_count > 0
    raise UnknownMailTriggerError(f"Unknown send_mail.when value: {when!r}")


def is_valid_address(address: str) -> bool:
    return bool(_EMAIL_RE.match(address or ""))


def _folder_link(folder: Optional[Path]) -> str:
    if folder is None:
        return "&ndash;"
    try:
        uri = folder.resolve().as_uri()
    except ValueError:
        return html.escape(str(folder))
    return f'<a href="{html.escape(uri)}">{html.escape(str(folder))}</a>'


def _format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def build_html_body(
    message: str,
    ctx: RunContext,
    folders: FolderConfig,
    finished_at: Optional[datetime] = None,
) -> str:
    """HTML report: caller fragment, summary table and per-file breakdown."""
    finished_at = finished_at or datetime.now()
    elapsed = (finished_at - ctx.started_at).total_seconds()

    summary: List[Tuple[str, str]] = [
        ("System errors", str(len(ctx.system_errors))),
        ("Pair errors", str(ctx.pair_error_count)),
        ("Pairs processed", str(len(ctx.pairs))),
        ("Files processed", str(len(ctx.results))),
        ("Source folder", _folder_link(folders.drop)),
        ("Archive folder", _folder_link(folders.archive)),
        ("Run started", html.escape(ctx.started_at.strftime("%Y-%m-%d %H:%M:%S"))),
        ("Run duration", _format_duration(elapsed)),
    ]
    rows = "\n".join(
        f"<tr><th style=\"text-align:left\">{label}</th><td>{value}</td></tr>" for label, value in summary
    )

    file_rows = "\n".join(
        f"<tr><td>{html.escape(r.file.name)}</td><td>{len(r.pairs)}</td>"
        f"<td>{r.updated_count}</td><td>{r.error_count}</td></tr>"
        for r in ctx.results
    )
    files_table = ""
    if file_rows:
        files_table = (
            "<h3>Processed files</h3>\n"
            "<table border=\"1\" cellpadding=\"4\" cellspacing=\"0\">\n"
            "<tr><th>File</th><th>Pairs</th><th>Updated</th><th>Errors</th></tr>\n"
            f"{file_rows}\n</table>"
        )

    errors_list = ""
    if ctx.system_errors:
        items = "\n".join(
            f"<li>{html.escape(e.timestamp.strftime('%H:%M:%S'))} {html.escape(e.message)}</li>"
            for e in ctx.system_errors
        )
        errors_list = f"<h3>System errors</h3>\n<ul>\n{items}\n</ul>"

    return (
        "<html><body>\n"
        f"<div>{message}</div>\n"
        "<h3>Summary</h3>\n"
        "<table border=\"1\" cellpadding=\"4\" cellspacing=\"0\">\n"
        f"{rows}\n</table>\n"
        f"{files_table}\n"
        f"{errors_list}\n"
        "</body></html>"
    )


def select_attachments(paths: Iterable[Path], max_bytes: int) -> Tuple[List[Path], List[Path]]:
    """Deduplicate attachment candidates and split them into (kept, dropped) by byte budget."""
    kept: List[Path] = []
    dropped: List[Path] = []
    seen = set()
    used = 0
    for p in paths:
        key = Path(p).resolve()
        if key in seen or not key.is_file():
            continue
        seen.add(key)
        size = key.stat().st_size
        if used + size > max_bytes:
            dropped.append(key)
            continue
        kept.append(key)
        used += size
    return kept, dropped


@dataclass
class MailRequest:
    sender: str
    to: Sequence[str]
    bcc: Sequence[str]
    subject: str
    html_body: str
    attachments: Sequence[Path] = ()
    high_priority: bool = False


def build_message(request: MailRequest, max_attachment_bytes: int) -> EmailMessage:
    """Validate addressing and assemble the MIME message."""
    if not request.sender:
        raise MailError("Mail sender address is required")
    if not request.to and not request.bcc:
        raise MailError("At least one To or Bcc recipient is required")
    bad = [a for a in [request.sender, *request.to, *request.bcc] if not is_valid_address(a)]
    if bad:
        raise MailError(f"Invalid email address(es): {', '.join(bad)}")

    kept, dropped = select_attachments(request.attachments, max_attachment_bytes)
    body = request.html_body
    if dropped:
        names = ", ".join(html.escape(p.name) for p in dropped)
        warning = (
            f"<p style=\"color:#b00\">Attachments omitted because they exceed the "
            f"{max_attachment_bytes} byte limit: {names}</p>"
        )
        body = body.replace("</body>", f"{warning}\n</body>") if "</body>" in body else body + warning
        logger.warning(f"Dropped {len(dropped)} attachment(s) over the size limit")

    msg = EmailMessage()
    msg["From"] = request.sender
    if request.to:
        msg["To"] = ", ".join(request.to)
    msg["Subject"] = request.subject
    if request.high_priority:
        msg["X-Priority"] = "1"
        msg["Importance"] = "High"
    msg.set_content("This report requires an HTML capable mail client.")
    msg.add_alternative(body, subtype="html")

    for p in kept:
        ctype, _ = mimetypes.guess_type(p.name)
        maintype, subtype = (ctype or "application/octet-stream").split("/", 1)
        msg.add_attachment(p.read_bytes(), maintype=maintype, subtype=subtype, filename=p.name)
    return msg


class SmtpMailer:
    """Sends EmailMessage objects over SMTP. Bcc recipients go in the envelope only."""

    def __init__(self, config: SmtpConfig, smtp_factory=None):
        self.config = config
        self._factory = smtp_factory

    def _connect(self) -> smtplib.SMTP:
        if self._factory is not None:
            return self._factory(self.config.server, self.config.port)
        if self.config.use_ssl:
            return smtplib.SMTP_SSL(self.config.server, self.config.port)
        return smtplib.SMTP(self.config.server, self.config.port)

    def _password(self) -> Optional[str]:
        if not self.config.password_env:
            return None
        return os.environ.get(self.config.password_env)

    def send(self, msg: EmailMessage, bcc: Sequence[str] = ()) -> None:
        if not self.config.server:
            raise MailError("SMTP server is not configured")
        password = self._password()
        if self.config.username and password is None:
            raise MailError(
                f"SMTP username configured but environment variable "
                f"{self.config.password_env or '(unset)'} holds no password"
            )
        recipients = [a.strip() for a in (msg.get("To") or "").split(",") if a.strip()] + list(bcc)
        with self._connect() as smtp:
            if self.config.use_starttls and not self.config.use_ssl:
                smtp.starttls()
            if self.config.username:
                smtp.login(self.config.username, password)
            smtp.send_message(msg, to_addrs=recipients)


def notify(
    mail: MailConfig,
    folders: FolderConfig,
    ctx: RunContext,
    mailer: Optional[SmtpMailer] = None,
) -> bool:
    """Decide, build and send the run report. Returns True when a mail was sent.

    Every failure is recorded as a system error on `ctx`.
    """
    try:
        send = should_send(mail.when, len(ctx.system_errors), ctx.pair_error_count, len(ctx.pairs))
    except UnknownMailTriggerError as e:
        ctx.add_system_error(str(e))
        return False
    if not send:
        logger.info(f"No mail sent (send_mail.when = {mail.when})")
        return False

    mailer = mailer or SmtpMailer(mail.smtp)
    try:
        request = MailRequest(
            sender=mail.sender or "",
            to=mail.to,
            bcc=mail.bcc,
            subject=mail.subject,
            html_body=build_html_body(mail.message, ctx, folders),
            attachments=list(ctx.log_files),
            high_priority=ctx.has_errors,
        )
        msg = build_message(request, mail.max_attachment_bytes)
        mailer.send(msg, bcc=mail.bcc)
    except Exception as e:
        ctx.add_system_error(f"Failed to send report mail: {e}")
        return False

    logger.info(f"Report mail sent to {len(mail.to) + len(mail.bcc)} recipient(s)")
    return True
