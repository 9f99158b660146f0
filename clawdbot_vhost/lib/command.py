from __future__ import annotations

import getpass
import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    context: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr; both are logged at DEBUG.
    - check=True raises CommandError carrying the tool's stderr.
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    logger.info("CMD %s", _fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        if not check:
            return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))
        raise CommandError(argv_list, 127, str(e), context=context) from e

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, p.stderr or "", context=context)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout or "", stderr=p.stderr or "")


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def privilege_prefix(*, preserve_env: bool = False) -> list[str]:
    """Escalation prefix: nothing when already root, otherwise sudo."""

    if is_root():
        return []
    return ["sudo", "-E"] if preserve_env else ["sudo"]


def run_privileged(argv: Sequence[str], *, preserve_env: bool = False, **kwargs) -> CmdResult:
    return run_cmd([*privilege_prefix(preserve_env=preserve_env), *argv], **kwargs)


def invoking_user() -> str:
    """The human behind the run: SUDO_USER when escalated, else the login user."""

    user = os.environ.get("SUDO_USER") or os.environ.get("USER")
    if user:
        return user
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def run_as_user(argv: Sequence[str], *, user: str, **kwargs) -> CmdResult:
    """Run as the unprivileged invoking user with that user's HOME."""

    return run_cmd(["sudo", "-u", user, "-H", *argv], **kwargs)


def write_privileged(path: str, contents: str, *, dry_run: bool = False) -> None:
    """Write a root-owned file through `tee` so only the write is escalated."""

    if dry_run:
        logger.info("Would write %s", path)
    run_privileged(["tee", path], input_text=contents, context=f"writing {path}", dry_run=dry_run)
