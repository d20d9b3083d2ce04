"""
Running external commands, optionally with root privileges.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from common.exceptions import CommandError

logger = logging.getLogger(__name__)

SUDO = "sudo"


def run(
    command: str,
    *args: str,
    env: Optional[Dict[str, str]] = None,
    input: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Run a command and return its (stdout, stderr).

    Raises:
        CommandError: If the command is missing or exits non-zero
    """
    cmd: List[str] = [command, *args]
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            env=env,
            input=input,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise CommandError(cmd, None, str(e)) from e

    if result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr or "")
    return result.stdout, result.stderr


def run_with_default_locale(command: str, *args: str) -> Tuple[str, str]:
    """Run a command with the C locale so its output can be parsed."""
    env = dict(os.environ)
    env["LC_ALL"] = "C"
    env["LANG"] = "C"
    return run(command, *args, env=env)


def _privileged(command: str, args: Tuple[str, ...]) -> List[str]:
    if os.geteuid() == 0:
        return [command, *args]
    return [SUDO, command, *args]


def run_with_privilege(reason: str, command: str, *args: str) -> Tuple[str, str]:
    """
    Run a command as root.

    ``reason`` is shown to the user because sudo may prompt for a password.
    """
    logger.info(f"Using root access: {reason}")
    cmd = _privileged(command, args)
    return run(*cmd)


def write_file_as_root(
    reason: str,
    content: str,
    path: Union[str, Path],
    mode: int = 0o644,
) -> None:
    """Write ``content`` to a root-owned ``path``."""
    logger.info(f"Using root access: {reason}")
    tee = _privileged("tee", (str(path),))
    run(*tee, input=content)
    chmod = _privileged("chmod", (format(mode, "o"), str(path)))
    run(*chmod)


def remove_file_as_root(reason: str, path: Union[str, Path]) -> None:
    """Remove a root-owned file; a missing file is not an error."""
    run_with_privilege(reason, "rm", "-f", str(path))
