"""Centralised configuration, storage key names, and config.ini I/O."""

from __future__ import annotations

import configparser
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("stealthvault.config")

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS


# ============================================================================
#  Config class
# ============================================================================
class Config:
    """Centralised settings."""

    # Storage
    NAMESPACE = "stealthvault"
    MAX_STORE_SIZE = 5 * 1024 * 1024  # 5 MB, same order as a browser origin quota

    # Session cache
    SESSION_TTL_MS = 24 * _HOUR_MS
    MIN_SESSION_TTL_MS = _MINUTE_MS

    # Cross-tab locks
    LOCK_DURATION_MS = 5000
    MIN_LOCK_DURATION_MS = 100  # well above LOCK_SETTLE_DELAY
    LOCK_SETTLE_DELAY = 0.010  # seconds between optimistic write and re-read

    # PIN throttle
    MAX_PIN_ATTEMPTS = 5
    PIN_DELAY_BASE = 2  # seconds

    # ------------------------------------------------------------------
    #  INI helpers
    # ------------------------------------------------------------------
    @staticmethod
    def load_settings(data_dir: Path | None = None) -> Settings:
        """Read overrides from config.ini, clamping each value to its bounds."""
        if data_dir is None:
            from stealthvault.paths import get_data_dir

            data_dir = get_data_dir()

        defaults = Settings()
        config_path = data_dir / "config.ini"
        if not config_path.exists():
            return defaults

        cfg = configparser.ConfigParser()
        try:
            cfg.read(config_path, encoding="utf-8")
            namespace = cfg.get("vault", "namespace", fallback=defaults.namespace).strip()
            ttl_hours = cfg.getfloat(
                "vault",
                "session_ttl_hours",
                fallback=defaults.session_ttl_ms / _HOUR_MS,
            )
            lock_ms = cfg.getint(
                "vault", "lock_duration_ms", fallback=defaults.lock_duration_ms
            )
            attempts = cfg.getint(
                "vault", "max_pin_attempts", fallback=defaults.max_pin_attempts
            )
        except (configparser.Error, ValueError) as exc:
            logger.warning("Ignoring malformed config.ini: %s", exc)
            return defaults

        ttl_ms = int(ttl_hours * _HOUR_MS)
        return Settings(
            namespace=namespace or defaults.namespace,
            session_ttl_ms=min(max(ttl_ms, Config.MIN_SESSION_TTL_MS), Config.SESSION_TTL_MS),
            lock_duration_ms=max(lock_ms, Config.MIN_LOCK_DURATION_MS),
            max_pin_attempts=max(attempts, 1),
        )

    @staticmethod
    def config_exists(data_dir: Path) -> bool:
        return (data_dir / "config.ini").exists()

    @staticmethod
    def write_defaults(data_dir: Path) -> None:
        """Create config.ini with the default settings on first run."""
        _write_config(data_dir, Settings())
        logger.info("Default config written to %s", data_dir / "config.ini")


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings; storage key names derive from the namespace."""

    namespace: str = Config.NAMESPACE
    session_ttl_ms: int = Config.SESSION_TTL_MS
    lock_duration_ms: int = Config.LOCK_DURATION_MS
    max_pin_attempts: int = Config.MAX_PIN_ATTEMPTS

    @property
    def vault_key(self) -> str:
        return f"{self.namespace}-encrypted-meta-keys"

    @property
    def session_key(self) -> str:
        return f"{self.namespace}-session-key"

    @property
    def session_marker_key(self) -> str:
        return f"{self.namespace}-meta-keys-session"

    @property
    def lock_prefix(self) -> str:
        return f"{self.namespace}-lock-"

    @property
    def broadcast_prefix(self) -> str:
        return f"{self.namespace}-broadcast-"


# ============================================================================
#  Atomic config writer
# ============================================================================
def _write_config(data_dir: Path, settings: Settings) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    if os.name != "nt":
        try:
            os.chmod(data_dir, 0o700)
        except OSError:
            logger.debug("Could not restrict permissions on %s", data_dir)

    config_path = data_dir / "config.ini"
    cfg = configparser.ConfigParser()
    cfg["vault"] = {
        "namespace": settings.namespace,
        "session_ttl_hours": str(settings.session_ttl_ms / _HOUR_MS),
        "lock_duration_ms": str(settings.lock_duration_ms),
        "max_pin_attempts": str(settings.max_pin_attempts),
    }

    fd = tempfile.NamedTemporaryFile(
        mode="w", dir=data_dir, prefix="cfg_tmp_", suffix=".ini", delete=False
    )
    try:
        cfg.write(fd)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        tmp = Path(fd.name)
        if os.name != "nt":
            os.chmod(tmp, 0o600)
        tmp.replace(config_path)
    except BaseException:
        fd.close()
        Path(fd.name).unlink(missing_ok=True)
        raise
