from __future__ import annotations

import shlex
from typing import Sequence


class PreconditionError(RuntimeError):
    """Invalid input or unsupported host, detected before anything is changed."""


class ProvisioningError(RuntimeError):
    """A provisioning step failed; the host may be partially provisioned."""


class CommandError(ProvisioningError):
    """An external tool returned non-success.

    The message keeps the tool's own stderr verbatim after a one-line prefix.
    """

    def __init__(
        self,
        argv: Sequence[str],
        returncode: int,
        stderr: str,
        context: str | None = None,
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        self.context = context
        cmdline = " ".join(shlex.quote(a) for a in self.argv)
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}Command failed ({returncode}): {cmdline}\n{stderr}".rstrip())
