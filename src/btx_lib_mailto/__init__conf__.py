"""Static package metadata surfaced by ``--info`` and the public package."""

from __future__ import annotations

name = "btx_lib_mailto"
title = "Compose mailto: requests and hand them to the desktop mail client"
version = "1.0.0"
homepage = "https://github.com/bitranox/btx_lib_mailto"
author = "bitranox"
author_email = "bitranox@gmail.com"
shell_command = "btx-lib-mailto"


def print_info() -> None:
    """Print the package metadata in aligned ``key: value`` lines."""

    fields = [
        ("name", name),
        ("title", title),
        ("version", version),
        ("homepage", homepage),
        ("author", author),
        ("author_email", author_email),
        ("shell_command", shell_command),
    ]
    pad = max(len(label) for label, _ in fields)
    lines = [f"Info for {name}:", ""]
    lines.extend(f"    {label.ljust(pad)} = {value}" for label, value in fields)
    print("\n".join(lines))
