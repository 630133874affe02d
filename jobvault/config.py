import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DB_PATH = Path("data/jobvault.db")
DEFAULT_MAX_BACKUPS = 10
DEFAULT_AUTO_BACKUP_HOURS = 24.0


def load_env() -> None:
    """Load .env from the working directory if present."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


@dataclass
class VaultConfig:
    """Runtime settings, read from JOBVAULT_* environment variables."""

    db_path: Path = DEFAULT_DB_PATH
    max_backups: int = DEFAULT_MAX_BACKUPS
    auto_backup_hours: float = DEFAULT_AUTO_BACKUP_HOURS
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    hasher: str = "sha256"

    @classmethod
    def from_env(cls) -> "VaultConfig":
        log_dir = os.getenv("JOBVAULT_LOG_DIR", "").strip()
        config = cls(
            db_path=Path(os.getenv("JOBVAULT_DB_PATH", "").strip() or DEFAULT_DB_PATH),
            max_backups=_env_int("JOBVAULT_MAX_BACKUPS", DEFAULT_MAX_BACKUPS),
            auto_backup_hours=_env_float("JOBVAULT_AUTO_BACKUP_HOURS", DEFAULT_AUTO_BACKUP_HOURS),
            log_level=os.getenv("JOBVAULT_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            log_dir=Path(log_dir) if log_dir else None,
            hasher=os.getenv("JOBVAULT_HASHER", "sha256").strip().lower() or "sha256",
        )
        if config.max_backups < 1:
            raise ValueError("JOBVAULT_MAX_BACKUPS must be at least 1")
        if config.hasher not in ("sha256", "rolling"):
            raise ValueError(f"JOBVAULT_HASHER must be 'sha256' or 'rolling', got {config.hasher!r}")
        return config

    @property
    def auto_backup_interval(self) -> float:
        """Interval between automatic backups, in seconds."""
        return self.auto_backup_hours * 3600
