"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .steamcmd import ARMA3_APP_ID, DEFAULT_STEAMCMD_PATH

DEFAULT_DATA_DIR = "data"
DEFAULT_INSTALL_TIMEOUT = 3600


class ConfigError(Exception):
    """Raised when settings are missing or invalid."""

    pass


def _path(value: str | None) -> Path | None:
    return Path(value).expanduser() if value else None


@dataclass
class Settings:
    """
    Everything a run needs. Optional values switch their step off when unset:

        steam_user/steam_pass  -> installing
        steam_api_key          -> metadata fetch
        mods_dir               -> stale cleanup, size checks, key copy
        keys_dir               -> key copy
    """

    modlist_dir: Path | None = None
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    mods_dir: Path | None = None
    keys_dir: Path | None = None
    steam_user: str | None = None
    steam_pass: str | None = None
    steam_api_key: str | None = None
    steamcmd_path: str = DEFAULT_STEAMCMD_PATH
    app_id: str = ARMA3_APP_ID
    install_timeout: float = DEFAULT_INSTALL_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        timeout_raw = env.get("WORKSHOP_INSTALL_TIMEOUT") or str(DEFAULT_INSTALL_TIMEOUT)
        try:
            install_timeout = float(timeout_raw)
        except ValueError:
            raise ConfigError(f"WORKSHOP_INSTALL_TIMEOUT must be a number, got {timeout_raw!r}")

        return cls(
            modlist_dir=_path(env.get("WORKSHOP_MODLIST_DIR")),
            data_dir=_path(env.get("WORKSHOP_DATA_DIR")) or Path(DEFAULT_DATA_DIR),
            mods_dir=_path(env.get("WORKSHOP_MODS_DIR")),
            keys_dir=_path(env.get("WORKSHOP_KEYS_DIR")),
            steam_user=env.get("STEAM_USER") or None,
            steam_pass=env.get("STEAM_PASS") or None,
            steam_api_key=env.get("STEAM_API_KEY") or None,
            steamcmd_path=env.get("STEAMCMD_PATH") or DEFAULT_STEAMCMD_PATH,
            app_id=env.get("WORKSHOP_APP_ID") or ARMA3_APP_ID,
            install_timeout=install_timeout,
        )

    @property
    def can_install(self) -> bool:
        return bool(self.steam_user and self.steam_pass)

    @property
    def can_fetch_metadata(self) -> bool:
        return bool(self.steam_api_key)

    def require_modlist_dir(self) -> Path:
        if self.modlist_dir is None:
            raise ConfigError("No modlist directory configured. Set WORKSHOP_MODLIST_DIR.")
        return self.modlist_dir
