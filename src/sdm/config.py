from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys
from typing import Optional


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path


@dataclass(frozen=True)
class SupabaseSettings:
    url: str
    api_key: str
    timeout: float = 10.0

    @property
    def rest_url(self) -> str:
        return self.url.rstrip("/") + "/rest/v1"


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "SoapDistributionManager") -> AppPaths:
    override = os.environ.get("SDM_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    exports = base / "exports"
    db = base / "sdm.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    exports.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, exports_dir=exports)


def load_supabase_settings(env: Optional[dict] = None) -> Optional[SupabaseSettings]:
    env = os.environ if env is None else env
    url = str(env.get("SDM_SUPABASE_URL", "")).strip()
    key = str(env.get("SDM_SUPABASE_KEY", "")).strip()
    if not url or not key:
        return None
    try:
        timeout = float(env.get("SDM_SUPABASE_TIMEOUT", "10") or 10)
    except ValueError:
        timeout = 10.0
    return SupabaseSettings(url=url, api_key=key, timeout=timeout)
