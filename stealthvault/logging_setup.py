"""Secure logging setup: no key material in logs, rotation, private log dir."""

from __future__ import annotations

import logging
import logging.handlers
import os
import platform
from pathlib import Path

from stealthvault.paths import get_log_path


class SecureFormatter(logging.Formatter):
    """Formatter that replaces byte strings and long strings with their length."""

    def format(self, record):
        if record.args and isinstance(record.args, tuple):
            safe = []
            for arg in record.args:
                if isinstance(arg, (bytes, bytearray, memoryview)):
                    safe.append(f"<{len(arg)} bytes>")
                elif isinstance(arg, str) and len(arg) > 50:
                    safe.append(f"<{len(arg)} chars>")
                else:
                    safe.append(arg)
            record.args = tuple(safe)
        return super().format(record)


def setup_secure_logging(log_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """Configure the *stealthvault* logger with rotation and safe formatting."""
    log_dir.mkdir(parents=True, exist_ok=True)
    if platform.system() != "Windows":
        try:
            os.chmod(log_dir, 0o700)
        except OSError:
            pass

    log_file = get_log_path(log_dir)

    root_logger = logging.getLogger("stealthvault")
    root_logger.setLevel(level)
    # avoid duplicate handlers on repeated calls
    if not root_logger.handlers:
        handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        handler.setFormatter(
            SecureFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root_logger.addHandler(handler)
    root_logger.propagate = False

    if platform.system() != "Windows":
        try:
            os.chmod(log_file, 0o600)
        except OSError:
            pass

    return root_logger
