"""Public package surface exposing the mailto builder, launcher, and metadata hooks."""

from __future__ import annotations

from .lib_mailto import (
    ConfMailto,
    EmailIntentBuilder,
    InvalidArgumentError,
    LaunchContext,
    MailtoRequest,
    NoHandlerError,
    SystemLauncher,
    conf,
    encode_recipient,
    from_context,
    logger,
    normalize_line_breaks,
    validate_email_address,
)
from .__init__conf__ import print_info

__all__ = [
    "print_info",
    "ConfMailto",
    "EmailIntentBuilder",
    "InvalidArgumentError",
    "LaunchContext",
    "MailtoRequest",
    "NoHandlerError",
    "SystemLauncher",
    "conf",
    "encode_recipient",
    "from_context",
    "logger",
    "normalize_line_breaks",
    "validate_email_address",
]
