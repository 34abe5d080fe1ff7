"""steamcmd wrapper for downloading workshop items."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

DEFAULT_STEAMCMD_PATH = "/steamcmd/steamcmd.sh"
ARMA3_APP_ID = "107410"
ERROR_MARKER = "ERROR!"
# how much output to keep as the error message when no ERROR! line is present
ERROR_TAIL_LINES = 15


class InstallerError(Exception):
    """Raised when the installer is misconfigured."""

    pass


@dataclass
class InstallResult:
    """Raw outcome of one steamcmd invocation."""

    output: str
    returncode: int
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def _error_text(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    marked = [line for line in lines if ERROR_MARKER in line]
    if marked:
        return "\n".join(marked)
    return "\n".join(lines[-ERROR_TAIL_LINES:])


class SteamCmd:
    """Runs ``workshop_download_item`` one mod at a time."""

    def __init__(
        self,
        username: str,
        password: str,
        steamcmd_path: str | Path = DEFAULT_STEAMCMD_PATH,
        app_id: str = ARMA3_APP_ID,
        timeout: float | None = 3600,
    ):
        if not username or not password:
            raise InstallerError(
                "No Steam credentials provided. Set STEAM_USER and STEAM_PASS."
            )
        self.username = username
        self.password = password
        self.steamcmd_path = str(steamcmd_path)
        self.app_id = str(app_id)
        self.timeout = timeout

    def build_command(self, mod_id: str, validate: bool = True) -> list[str]:
        cmd = [
            self.steamcmd_path,
            "+login", self.username, self.password,
            "+workshop_download_item", self.app_id, str(mod_id),
        ]
        if validate:
            cmd.append("validate")
        cmd.append("+quit")
        return cmd

    def _masked(self, cmd: list[str]) -> str:
        return " ".join("********" if part == self.password else part for part in cmd)

    def install(self, mod_id: str, validate: bool = True) -> InstallResult:
        """
        Download or update one workshop item.

        Never raises for a failed download: the failure is reported in the
        result so the caller can classify it from the output text.
        """
        cmd = self.build_command(mod_id, validate=validate)
        log.debug("Running: %s", self._masked(cmd))

        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return InstallResult(
                output="",
                returncode=-1,
                error=f"steamcmd timed out after {self.timeout} seconds",
            )
        except OSError as e:
            return InstallResult(output="", returncode=-1, error=f"Cannot run steamcmd: {e}")

        output = (proc.stdout or "") + (proc.stderr or "")
        if proc.returncode != 0 or ERROR_MARKER in output:
            error = _error_text(output) or f"steamcmd exited with code {proc.returncode}"
            return InstallResult(output=output, returncode=proc.returncode, error=error)

        return InstallResult(output=output, returncode=proc.returncode)
