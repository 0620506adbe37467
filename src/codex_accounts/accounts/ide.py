"""Ask a running editor to reload after the credential export changes.

Editors embedding the Codex CLI read ``auth.json`` at start-up, so an
account switch only takes effect once the editor window reloads. Reload
is best effort: the editor's own CLI is asked to run its reload command,
and on Windows the editor processes are restarted when no CLI is found.
"""

from __future__ import annotations

import enum
import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Optional

from codex_accounts.exceptions import InvalidInputError
from codex_accounts.models import IdeTarget

logger = logging.getLogger(__name__)

_ALIASES = {
    "vscode": IdeTarget.VSCODE,
    "code": IdeTarget.VSCODE,
    "cursor": IdeTarget.CURSOR,
    "windsurf": IdeTarget.WINDSURF,
    "trae": IdeTarget.TRAE,
    "vscodium": IdeTarget.VSCODIUM,
    "codium": IdeTarget.VSCODIUM,
    "zed": IdeTarget.ZED,
}

CLI_CANDIDATES: dict[IdeTarget, tuple[str, ...]] = {
    IdeTarget.VSCODE: ("code", "code-insiders"),
    IdeTarget.CURSOR: ("cursor",),
    IdeTarget.WINDSURF: ("windsurf",),
    IdeTarget.TRAE: ("trae",),
    IdeTarget.VSCODIUM: ("codium",),
    IdeTarget.ZED: ("zed",),
}

PROCESS_NAMES: dict[IdeTarget, tuple[str, ...]] = {
    IdeTarget.VSCODE: ("Code", "Code - Insiders"),
    IdeTarget.CURSOR: ("Cursor",),
    IdeTarget.WINDSURF: ("Windsurf",),
    IdeTarget.TRAE: ("Trae",),
    IdeTarget.VSCODIUM: ("VSCodium",),
    IdeTarget.ZED: ("Zed",),
}

RELOAD_ARGS = ("--reuse-window", "--command", "workbench.action.reloadWindow")
_COMMAND_TIMEOUT = 20.0


class ReloadStatus(str, enum.Enum):
    RELOADED = "reloaded"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class ReloadOutcome:
    status: ReloadStatus
    message: Optional[str] = None


def normalize_ide_target(text: str) -> IdeTarget:
    """Map user input such as ``"Code"`` or ``"codium"`` to an :class:`IdeTarget`.

    Raises:
        InvalidInputError: If *text* names no supported editor.
    """
    target = _ALIASES.get(text.strip().lower())
    if target is None:
        choices = ", ".join(t.value for t in IdeTarget)
        raise InvalidInputError(f"Invalid IDE target '{text}'. Choose one of: {choices}")
    return target


def _run(args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        args,
        capture_output=True,
        text=True,
        timeout=_COMMAND_TIMEOUT,
        check=False,
    )


def _trigger_reload_command(target: IdeTarget) -> bool:
    """Run the reload command through every editor CLI found on ``PATH``.

    Returns False when no CLI is installed.

    Raises:
        OSError, subprocess.SubprocessError: If a CLI could not be run or
            exited non-zero.
    """
    ran = False
    for name in CLI_CANDIDATES[target]:
        executable = shutil.which(name)
        if executable is None:
            continue
        result = _run([executable, *RELOAD_ARGS])
        if result.returncode != 0:
            detail = result.stderr.strip()
            raise subprocess.SubprocessError(
                f"IDE reload command failed: {detail}" if detail else "IDE reload command failed"
            )
        ran = True
    return ran


def _restart_processes(target: IdeTarget) -> bool:
    """Restart the editor's processes via PowerShell. Windows only.

    Returns True if at least one process was found.
    """
    if sys.platform != "win32":
        return False
    names = ",".join(f"'{name}'" for name in PROCESS_NAMES[target])
    script = (
        "$ErrorActionPreference='SilentlyContinue'; "
        f"$names=@({names}); $found=$false; "
        "foreach ($name in $names) { "
        "$procs=Get-Process -Name $name -ErrorAction SilentlyContinue; "
        "foreach ($p in $procs) { $found=$true; $path=$p.Path; "
        "Stop-Process -Id $p.Id -Force -ErrorAction SilentlyContinue; "
        "if ($path) { Start-Process -WindowStyle Hidden -FilePath $path | Out-Null } } }; "
        "if ($found) { exit 0 } else { exit 2 }"
    )
    result = _run(
        ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass",
         "-WindowStyle", "Hidden", "-Command", script]
    )
    if result.returncode == 0:
        return True
    if result.returncode == 2:
        return False
    detail = result.stderr.strip()
    raise subprocess.SubprocessError(
        f"IDE process restart command failed: {detail}"
        if detail
        else "IDE process restart command failed"
    )


def reload_ide(target: IdeTarget) -> ReloadOutcome:
    """Reload *target* so it picks up the new credentials.

    Never raises; failures are reported in the returned outcome.
    """
    command_error: Optional[str] = None
    try:
        if _trigger_reload_command(target):
            logger.info("Reloaded %s via its CLI", target.value)
            return ReloadOutcome(ReloadStatus.RELOADED)
    except (OSError, subprocess.SubprocessError) as exc:
        command_error = str(exc)
        logger.warning("%s reload command failed: %s", target.value, exc)

    try:
        restarted = _restart_processes(target)
    except (OSError, subprocess.SubprocessError) as exc:
        message = f"{command_error}; {exc}" if command_error else str(exc)
        return ReloadOutcome(ReloadStatus.FAILED, message)

    if restarted:
        logger.info("Restarted %s processes", target.value)
        return ReloadOutcome(ReloadStatus.RELOADED)
    if command_error:
        return ReloadOutcome(ReloadStatus.FAILED, command_error)
    return ReloadOutcome(ReloadStatus.NOT_FOUND)
