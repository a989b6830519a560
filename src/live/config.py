"""
라이브 세션 설정. .env(프로젝트 루트) → 환경변수 → 기본값 순.

기본값은 JD 라이브 콘솔 제약 기준:
- 최소 설명 시간 63초 (이보다 짧으면 플랫폼에서 설명 기록이 남지 않음)
- 설명 시작/종료 호출 간격 1.5초
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .models import FILE_USE_ALL

MIN_EXPLAIN_DURATION = 63.0
EXPLAIN_ACTION_DELAY = 1.5
DEFAULT_EXPLAIN_DURATION = 70.0
DEFAULT_REST_DURATION = 10.0
MAX_LOGS = 500
MAX_SESSIONS = 50
MIN_START_TIME_MINUTES = 3
MAX_START_TIME_DAYS = 30

OVERFETCH_MARGIN = 20
FETCH_CHUNK_SIZE = 100
MAX_BATCH_SIZE = 150


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent.parent


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass
class LiveConfig:
    """오케스트레이터 전체 설정 묶음"""
    min_explain_duration: float = MIN_EXPLAIN_DURATION
    min_call_spacing: float = EXPLAIN_ACTION_DELAY
    explain_duration: float = DEFAULT_EXPLAIN_DURATION
    rest_duration: float = DEFAULT_REST_DURATION
    settle_delay: float = EXPLAIN_ACTION_DELAY
    auto_advance: bool = True
    max_sessions: int = MAX_SESSIONS
    max_logs: int = MAX_LOGS
    data_dir: Path = field(default_factory=lambda: _project_root() / "data")
    overfetch: int = OVERFETCH_MARGIN
    fetch_chunk: int = FETCH_CHUNK_SIZE
    batch_size: int = MAX_BATCH_SIZE
    retry_attempts: int = 1
    default_quota: int = FILE_USE_ALL
    overlay_port: int = 8765
    jd_cookie: str = ""
    ai_api_key: str = ""
    ai_model: Optional[str] = None
    ai_base_url: Optional[str] = None
    ai_throttle: float = 1.0

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "LiveConfig":
        """.env 로드 후 환경변수에서 설정 생성. 잘못된 숫자는 기본값으로."""
        load_dotenv(env_file or (_project_root() / ".env"))
        data_dir = (os.environ.get("LIVE_DATA_DIR") or "").strip()
        return cls(
            min_explain_duration=_env_float("LIVE_MIN_EXPLAIN_SEC", MIN_EXPLAIN_DURATION),
            min_call_spacing=_env_float("LIVE_CALL_SPACING_SEC", EXPLAIN_ACTION_DELAY),
            explain_duration=_env_float("LIVE_EXPLAIN_SEC", DEFAULT_EXPLAIN_DURATION),
            rest_duration=_env_float("LIVE_REST_SEC", DEFAULT_REST_DURATION),
            settle_delay=_env_float("LIVE_SETTLE_SEC", EXPLAIN_ACTION_DELAY),
            auto_advance=_env_bool("LIVE_AUTO_ADVANCE", True),
            max_sessions=_env_int("LIVE_MAX_SESSIONS", MAX_SESSIONS),
            data_dir=Path(data_dir) if data_dir else _project_root() / "data",
            overfetch=_env_int("INGEST_OVERFETCH", OVERFETCH_MARGIN),
            fetch_chunk=_env_int("INGEST_FETCH_CHUNK", FETCH_CHUNK_SIZE),
            batch_size=_env_int("INGEST_BATCH_SIZE", MAX_BATCH_SIZE),
            retry_attempts=max(1, _env_int("INGEST_RETRY", 1)),
            overlay_port=_env_int("OVERLAY_PORT", 8765),
            jd_cookie=(os.environ.get("JD_COOKIE") or "").strip(),
            ai_api_key=(os.environ.get("AI_API_KEY") or "").strip(),
            ai_model=(os.environ.get("AI_MODEL") or "").strip() or None,
            ai_base_url=(os.environ.get("AI_BASE_URL") or "").strip() or None,
            ai_throttle=_env_float("AI_THROTTLE_SEC", 1.0),
        )
