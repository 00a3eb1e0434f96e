"""Mailto request helpers handing composed email to the desktop mail client.

Purpose
-------
Provide a fluent builder (`EmailIntentBuilder`) that collects recipients,
subject, body and an optional attachment, validates every input at the moment
it arrives, and serialises the result into a ``mailto:`` URI wrapped in a
launchable :class:`MailtoRequest`. The module holds the boundary between
library callers and the operating system's URI handler.

Contents
--------
* :class:`ConfMailto` – validated runtime configuration surface.
* :class:`LaunchContext` – describes who launches the request.
* :class:`MailtoRequest` – frozen request ready for dispatch.
* :class:`EmailIntentBuilder` – accumulates fields and builds requests.
* :class:`SystemLauncher` – default dispatcher using the native opener.
* :func:`validate_email_address`, :func:`normalize_line_breaks`,
  :func:`encode_recipient` – pure helpers shared by the builder and the CLI.

System Role
-----------
Lives in the adapter layer. Validated intent flows inward from callers and the
CLI; the only side effect flowing outward is the launcher's subprocess call.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import os
import pathlib
import re
import shlex
import subprocess
import sys
import webbrowser
from collections.abc import Callable, Iterable
from typing import Any, cast
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator


logger = logging.getLogger("btx_lib_mailto")

MAILTO_SCHEME = "mailto:"

ACTION_SENDTO = "sendto"
ACTION_SEND = "send"

_EMAIL_ADDRESS_PATTERN = re.compile(
    r"[a-zA-Z0-9+._%\-]{1,256}"
    r"@"
    r"[a-zA-Z0-9][a-zA-Z0-9\-]{0,64}"
    r"(\.[a-zA-Z0-9][a-zA-Z0-9\-]{0,25})+"
)


class InvalidArgumentError(ValueError):
    """Raised when a builder input is absent or malformed."""


class NoHandlerError(RuntimeError):
    """Raised by launchers when no application can service a request."""


class ConfMailto(BaseModel):
    """Validated launcher configuration shared across requests.

    Why
        Expose a single authoritative object that reconciles CLI flags and
        defaults while enforcing types and sensible ranges.

    What
        A Pydantic model read by :class:`SystemLauncher` on every dispatch.

    Fields
    ------
    open_command:
        Optional override command; the URI is appended as last argument.
    launch_timeout:
        Seconds to wait for the opener's exit status; an opener still
        running afterwards counts as a successful dispatch.
    fallback_to_webbrowser:
        Try :func:`webbrowser.open` when the native opener fails.
    """

    open_command: list[str] = Field(default_factory=list)
    launch_timeout: float = 10.0
    fallback_to_webbrowser: bool = True

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("open_command", mode="before")
    @classmethod
    def _coerce_open_command(cls, value: Any) -> list[str]:
        """Coerce ``None``, a shell-like string or an iterable into argv form."""

        return _collect_command_inputs(value)

    @field_validator("launch_timeout")
    @classmethod
    def _check_launch_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("launch_timeout must be positive")
        return value


#: Global configuration instance reflecting defaults and runtime overrides.
conf = ConfMailto()


@dataclass(frozen=True)
class MailtoRequest:
    """Launchable send request produced by :meth:`EmailIntentBuilder.build`.

    Fields
    ------
    action:
        ``"sendto"`` for plain composition, ``"send"`` when a file is streamed.
    uri:
        The serialised ``mailto:`` URI.
    stream:
        Attachment reference handed to the receiving client, if any.
    grant_read_permission:
        ``True`` when the receiver must be allowed to read ``stream``.
    new_task:
        ``True`` when the receiver starts as an independent task.
    """

    action: str
    uri: str
    stream: pathlib.Path | None = None
    grant_read_permission: bool = False
    new_task: bool = False

    def __str__(self) -> str:
        return self.uri


Launcher = Callable[[MailtoRequest], None]


@dataclass(frozen=True)
class LaunchContext:
    """Who launches a request and through which launcher.

    ``interactive`` mirrors a foreground UI: when ``False`` the dispatched
    request is flagged ``new_task`` so the mail client detaches from us.
    ``launcher`` defaults to a :class:`SystemLauncher` when ``None``.
    """

    interactive: bool = True
    launcher: Launcher | None = None

    @classmethod
    def detect(cls, launcher: Launcher | None = None) -> "LaunchContext":
        """Derive interactivity from whether stdin and stdout are terminals."""

        interactive = _isatty(sys.stdin) and _isatty(sys.stdout)
        return cls(interactive=interactive, launcher=launcher)

    def resolve_launcher(self) -> Launcher:
        return self.launcher if self.launcher is not None else SystemLauncher()


class EmailIntentBuilder:
    """Fluent builder turning email fields into a :class:`MailtoRequest`.

    Why
        Callers want to hand an email draft to the user's mail client without
        caring about URI escaping rules or platform launch details.

    What
        Every configuration call validates its input immediately and either
        applies it completely or raises :class:`InvalidArgumentError` leaving
        the builder untouched. :meth:`build` is pure and repeatable;
        :meth:`start` dispatches the built request.

    Examples
    --------
    >>> builder = EmailIntentBuilder.from_context(LaunchContext())
    >>> builder.add_to("alice@example.org").set_subject("Hi there").build_uri()
    'mailto:alice@example.org?subject=Hi%20there'
    """

    def __init__(self, context: LaunchContext) -> None:
        if context is None:  # pyright: ignore[reportUnnecessaryComparison]
            raise InvalidArgumentError("context must not be None")
        self._context = context
        # dicts keep insertion order and collapse duplicates
        self._to: dict[str, None] = {}
        self._cc: dict[str, None] = {}
        self._bcc: dict[str, None] = {}
        self._subject: str | None = None
        self._body: str | None = None
        self._attachment: pathlib.Path | None = None

    @classmethod
    def from_context(cls, context: LaunchContext) -> "EmailIntentBuilder":
        return cls(context)

    @property
    def context(self) -> LaunchContext:
        return self._context

    @property
    def to(self) -> tuple[str, ...]:
        return tuple(self._to)

    @property
    def cc(self) -> tuple[str, ...]:
        return tuple(self._cc)

    @property
    def bcc(self) -> tuple[str, ...]:
        return tuple(self._bcc)

    @property
    def subject(self) -> str | None:
        return self._subject

    @property
    def body(self) -> str | None:
        return self._body

    @property
    def attachment(self) -> pathlib.Path | None:
        return self._attachment

    def add_to(self, addresses: str | Iterable[str]) -> "EmailIntentBuilder":
        """Add one or more primary recipients."""

        _add_addresses(self._to, addresses, field="to")
        return self

    def add_cc(self, addresses: str | Iterable[str]) -> "EmailIntentBuilder":
        """Add one or more carbon-copy recipients."""

        _add_addresses(self._cc, addresses, field="cc")
        return self

    def add_bcc(self, addresses: str | Iterable[str]) -> "EmailIntentBuilder":
        """Add one or more blind carbon-copy recipients."""

        _add_addresses(self._bcc, addresses, field="bcc")
        return self

    def set_subject(self, subject: str) -> "EmailIntentBuilder":
        """Set the single-line subject, replacing any previous value.

        Raises
        ------
        InvalidArgumentError
            When ``subject`` is ``None`` or contains ``\\r`` or ``\\n``.
        """

        _require(subject, "subject")
        _require_text(subject, "subject")
        if "\r" in subject or "\n" in subject:
            raise InvalidArgumentError(f"subject must not contain line breaks: {subject!r}")
        self._subject = subject
        return self

    def set_body(self, body: str) -> "EmailIntentBuilder":
        """Set the body, normalising every line break to ``\\r\\n``."""

        _require(body, "body")
        _require_text(body, "body")
        self._body = normalize_line_breaks(body)
        return self

    def attach(self, attachment: str | os.PathLike[str]) -> "EmailIntentBuilder":
        """Reference a local file the mail client should attach."""

        _require(attachment, "attachment")
        if not isinstance(attachment, (str, os.PathLike)):
            raise InvalidArgumentError(f"attachment must be a path, got {type(attachment).__name__}")
        self._attachment = pathlib.Path(attachment)
        return self

    def build_uri(self) -> str:
        """Serialise the current state into a ``mailto:`` URI.

        Why
            The URI is the artefact every mail client understands; keeping its
            assembly in one place fixes the parameter order.

        What
            Emits ``mailto:`` and the comma-joined ``to`` recipients, then the
            non-empty parameters ``cc``, ``bcc``, ``subject`` and ``body`` in
            that order, the first introduced by ``?`` and the rest by ``&``.

        Outputs
        -------
        str
            The URI; identical for identical builder state.

        Side Effects
        ------------
        None.
        """

        parts = [MAILTO_SCHEME, _encode_recipients(self._to)]

        parameters: list[tuple[str, str]] = []
        if self._cc:
            parameters.append(("cc", _encode_recipients(self._cc)))
        if self._bcc:
            parameters.append(("bcc", _encode_recipients(self._bcc)))
        if self._subject:
            parameters.append(("subject", _percent_encode(self._subject)))
        if self._body:
            parameters.append(("body", _percent_encode(self._body)))

        for index, (name, value) in enumerate(parameters):
            parts.append("?" if index == 0 else "&")
            parts.append(f"{name}={value}")

        return "".join(parts)

    def build(self) -> MailtoRequest:
        """Return the launchable request for the current state without mutating it."""

        uri = self.build_uri()
        if self._attachment is None:
            return MailtoRequest(action=ACTION_SENDTO, uri=uri)
        return MailtoRequest(
            action=ACTION_SEND,
            uri=uri,
            stream=self._attachment,
            grant_read_permission=True,
            new_task=True,
        )

    def start(self) -> bool:
        """Build the request and hand it to the context's launcher.

        Why
            A missing mail client is an expected outcome on many desktops and
            should not crash the caller.

        What
            Flags the request ``new_task`` for non-interactive contexts, calls
            the launcher and converts :class:`NoHandlerError` into ``False``.

        Outputs
        -------
        bool
            ``True`` when the launcher accepted the request, ``False`` when no
            handler could service it.

        Side Effects
        ------------
        Runs the launcher (usually a subprocess) and logs the outcome.
        """

        request = self.build()
        if not self._context.interactive and not request.new_task:
            request = replace(request, new_task=True)

        launcher = self._context.resolve_launcher()
        try:
            launcher(request)
        except NoHandlerError as exc:
            logger.warning('no application can handle "%s": %s', request.uri, exc)
            return False
        logger.debug('dispatched "%s" request for "%s"', request.action, request.uri)
        return True


def from_context(context: LaunchContext) -> EmailIntentBuilder:
    """Return a fresh builder bound to ``context``."""

    return EmailIntentBuilder.from_context(context)


class SystemLauncher:
    """Dispatch requests to the desktop's default ``mailto:`` handler.

    Why
        Each operating system exposes its URI handler differently; callers
        should see one behaviour: success, or :class:`NoHandlerError`.

    What
        Runs ``conf.open_command`` when configured, otherwise ``xdg-email`` /
        ``xdg-open`` on Linux and BSD, ``open`` on macOS and
        :func:`os.startfile` on Windows. Falls back to :mod:`webbrowser` for
        requests without attachment when ``conf.fallback_to_webbrowser`` is set.

    Side Effects
    ------------
    Spawns subprocesses; ``new_task`` requests run in a new session.
    """

    def __init__(self, config: ConfMailto | None = None, platform: str | None = None) -> None:
        self._config = config
        self._platform = platform

    @property
    def config(self) -> ConfMailto:
        return self._config if self._config is not None else conf

    @property
    def platform(self) -> str:
        return self._platform if self._platform is not None else sys.platform

    def __call__(self, request: MailtoRequest) -> None:
        try:
            self._open_native(request)
        except NoHandlerError:
            if request.stream is not None or not self.config.fallback_to_webbrowser:
                raise
            logger.warning(
                'native opener failed for "%s", trying webbrowser',
                request.uri,
                exc_info=True,
            )
            if not webbrowser.open(request.uri):
                raise NoHandlerError(f'webbrowser could not open "{request.uri}"') from None

    def _open_native(self, request: MailtoRequest) -> None:
        if self.platform.startswith("win") and not self.config.open_command:
            self._start_file(request)
            return
        command = self.command_for(request)
        try:
            process = subprocess.Popen(
                command,
                start_new_session=request.new_task,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise NoHandlerError(f'can not run "{command[0]}": {exc}') from exc

        try:
            returncode = process.wait(timeout=self.config.launch_timeout)
        except subprocess.TimeoutExpired:
            # opener stays in the foreground while the mail client runs
            logger.debug(f'"{command[0]}" still running after {self.config.launch_timeout} seconds, leaving it attached')
            return
        if returncode != 0:
            raise NoHandlerError(f'"{command[0]}" exited with status {returncode}')

    def command_for(self, request: MailtoRequest) -> list[str]:
        """Return the argv used to open ``request`` on this platform."""

        if self.config.open_command:
            return [*self.config.open_command, request.uri]
        if self.platform == "darwin":
            self._warn_unsupported_attachment(request, "open")
            return ["open", request.uri]
        if request.stream is not None:
            return ["xdg-email", "--attach", str(request.stream), request.uri]
        return ["xdg-open", request.uri]

    def _start_file(self, request: MailtoRequest) -> None:
        self._warn_unsupported_attachment(request, "os.startfile")
        startfile = cast(Callable[[str], None], getattr(os, "startfile"))
        try:
            startfile(request.uri)
        except OSError as exc:
            raise NoHandlerError(f'no mailto handler registered: {exc}') from exc

    @staticmethod
    def _warn_unsupported_attachment(request: MailtoRequest, opener: str) -> None:
        if request.stream is not None:
            logger.warning('attachment "%s" can not be forwarded by %s', request.stream, opener)


def validate_email_address(address: str) -> None:
    """Raise :class:`InvalidArgumentError` unless ``address`` is a plausible email.

    Examples
    --------
    >>> validate_email_address("user@example.com")
    >>> validate_email_address("user@")
    Traceback (most recent call last):
    ...
    btx_lib_mailto.lib_mailto.InvalidArgumentError: invalid email address 'user@'
    """

    if not isinstance(address, str) or _EMAIL_ADDRESS_PATTERN.fullmatch(address) is None:
        raise InvalidArgumentError(f"invalid email address {address!r}")


def normalize_line_breaks(text: str) -> str:
    """Return ``text`` with every line break rewritten as ``\\r\\n``.

    Collapses ``\\r\\n`` to ``\\n`` first, then turns lone ``\\r`` into
    ``\\n``, then expands every ``\\n``. Applying it twice changes nothing.

    >>> normalize_line_breaks("a\\rb\\nc\\r\\nd")
    'a\\r\\nb\\r\\nc\\r\\nd'
    """

    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\r\n")


def encode_recipient(address: str) -> str:
    """Percent-encode local part and host separately around the last ``@``.

    >>> encode_recipient("a+b@example.org")
    'a%2Bb@example.org'
    """

    local_part, separator, host = address.rpartition("@")
    if not separator:
        return _percent_encode(address)
    return f"{_percent_encode(local_part)}@{_percent_encode(host)}"


def _encode_recipients(addresses: Iterable[str]) -> str:
    return ",".join(encode_recipient(address) for address in addresses)


def _percent_encode(value: str) -> str:
    return quote(value, safe="")


def _add_addresses(target: dict[str, None], addresses: str | Iterable[str], *, field: str) -> None:
    """Validate every candidate first, then insert them all.

    Why
        A failing call must leave the recipient set exactly as it was.

    Inputs
    ------
    target:
        Ordered set (dict with ``None`` values) to extend.
    addresses:
        Single address or iterable of addresses.
    field:
        Name used in error messages (``to``, ``cc``, ``bcc``).

    Side Effects
    ------------
    Mutates ``target`` only when every address validates.
    """

    _require(addresses, field)
    if isinstance(addresses, str):
        candidates: list[Any] = [addresses]
    elif isinstance(addresses, Iterable):  # pyright: ignore[reportUnnecessaryIsInstance]
        candidates = list(cast(Iterable[Any], addresses))
    else:
        raise InvalidArgumentError(f"{field} must be a string or an iterable of strings")

    for candidate in candidates:
        if candidate is None:
            raise InvalidArgumentError(f"{field} address must not be None")
        validate_email_address(candidate)

    for candidate in candidates:
        target[candidate] = None
    logger.debug("added %d %s recipient(s)", len(candidates), field)


def _require(value: Any, name: str) -> None:
    if value is None:
        raise InvalidArgumentError(f"{name} must not be None")


def _require_text(value: Any, name: str) -> None:
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{name} must be a string, got {type(value).__name__}")


def _collect_command_inputs(value: Any) -> list[str]:
    """Coerce user input into an argv list.

    Why
        Supports ``None``, shell-like strings and iterables while validating
        entries.

    Inputs
    ------
    value:
        Caller-supplied command configuration.

    Outputs
    -------
    list[str]
        Argument vector (possibly empty).
    """

    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, Iterable):  # type: ignore[reportUnnecessaryIsInstance]
        command: list[str] = []
        for item in cast(Iterable[Any], value):
            if not isinstance(item, str):
                raise ValueError("open_command entries must be strings")
            command.append(item)
        return command
    raise ValueError("open_command must be a string, list of strings, or tuple of strings")


def _isatty(stream: Any) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except ValueError:
        # closed stream
        return False
