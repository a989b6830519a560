"""
프로젝트 공통 로깅 설정.

- 콘솔: LOG_CONSOLE_LEVEL (기본 WARNING)
- 통합: logs/app.log (INFO 이상), 에러: logs/error.log (ERROR 이상)
- 카테고리: logs/jd.log, logs/live.log, logs/screen.log, logs/ai.log
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# (파일명, logger name prefix들)
CATEGORY_LOGS = (
    ("jd.log", ("src.jd", "httpx")),
    ("live.log", ("src.live",)),
    ("screen.log", ("src.screen", "socketio", "engineio", "uvicorn")),
    ("ai.log", ("src.ai", "openai")),
)


class _PrefixFilter(logging.Filter):
    """logger name prefix 기반 필터."""

    def __init__(self, *prefixes: str):
        super().__init__()
        self._prefixes = tuple(p for p in prefixes if p)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name or ""
        return any(name == p or name.startswith(p + ".") for p in self._prefixes)


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent.parent


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _mk_rotating_handler(path: Path, level: int, fmt: logging.Formatter) -> RotatingFileHandler:
    max_mb = _env_int("LOG_MAX_MB", 10)
    backups = _env_int("LOG_BACKUP_COUNT", 5)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_logging(log_dir: Optional[Path] = None) -> Path:
    """루트 로거/핸들러를 재설정하고 로그 디렉터리 경로 반환."""
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.setLevel(logging.DEBUG)

    log_dir = Path(log_dir) if log_dir else _project_root() / "logs"
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    console_level_name = (os.environ.get("LOG_CONSOLE_LEVEL") or "WARNING").upper()
    console_level = getattr(logging, console_level_name, logging.WARNING)
    ch = logging.StreamHandler()
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    root.addHandler(_mk_rotating_handler(log_dir / "app.log", logging.INFO, fmt))
    root.addHandler(_mk_rotating_handler(log_dir / "error.log", logging.ERROR, fmt))

    for filename, prefixes in CATEGORY_LOGS:
        handler = _mk_rotating_handler(log_dir / filename, logging.DEBUG, fmt)
        handler.addFilter(_PrefixFilter(*prefixes))
        root.addHandler(handler)

    # noisy logger 억제 (파일에는 남기고 싶으면 WARNING, 완전 억제는 ERROR)
    noisy_level_name = (os.environ.get("ENGINEIO_LOG_LEVEL") or "WARNING").upper()
    noisy_level = getattr(logging, noisy_level_name, logging.WARNING)
    for name in ("engineio", "engineio.server", "socketio", "socketio.server", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(noisy_level)

    return log_dir
