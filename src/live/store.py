"""
라이브 세션 저장소 (활성 세션 + 최근순 히스토리 + 상품 파일 + 실행 로그).

전역 상태 대신 이 객체를 각 컴포넌트 생성자에 넘긴다.
다른 컴포넌트는 SessionView(읽기 전용)로만 읽는다.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence

from .config import MAX_LOGS, MAX_SESSIONS, MAX_START_TIME_DAYS, MIN_START_TIME_MINUTES
from .errors import LiveError, PersistenceError, ValidationError
from .models import (
    FILE_USE_ALL,
    AIScript,
    LiveProduct,
    LiveSession,
    LogEntry,
    ProductFile,
)
from .persistence import SessionPersistence

logger = logging.getLogger(__name__)

# 멘트 생성 실패 시 대체 문구 (순서대로 돌려 씀)
SCRIPT_TEMPLATES = (
    "这款商品非常推荐给大家！品质有保障，价格也很实惠。喜欢的朋友们可以点击下方链接下单哦~",
    "家人们看过来！这款商品是我们精心挑选的，性价比超高！数量有限，先到先得~",
    "宝子们，这款商品真的太棒了！我自己也在用，强烈推荐给大家！赶紧下单吧~",
)
DEFAULT_SCRIPT = "欢迎来到直播间！今天给大家带来超值好物推荐~"

_LOG_LEVELS = ("info", "warn", "error", "success")


def fallback_script(index: int) -> str:
    """index번째 상품용 대체 멘트."""
    return SCRIPT_TEMPLATES[index % len(SCRIPT_TEMPLATES)]


class SessionView:
    """활성 세션 읽기 전용 뷰. 설명 순서 = 멘트 순서 (멘트 없으면 상품 순서)."""

    def __init__(self, session: Optional[LiveSession]):
        self._session = session

    @property
    def session_id(self) -> Optional[str]:
        return self._session.id if self._session else None

    @property
    def products(self) -> Sequence[LiveProduct]:
        return tuple(self._session.products) if self._session else ()

    @property
    def scripts(self) -> Sequence[AIScript]:
        return tuple(self._session.scripts) if self._session else ()

    def narration_ids(self) -> List[str]:
        """설명 순서대로 상품 SKU 목록."""
        if not self._session:
            return []
        if self._session.scripts:
            ids = []
            for i, s in enumerate(self._session.scripts):
                pid = s.related_product_id
                if not pid and i < len(self._session.products):
                    pid = self._session.products[i].sku
                ids.append(pid or "")
            return ids
        return [p.sku for p in self._session.products]

    @property
    def narration_count(self) -> int:
        return len(self.narration_ids())

    def script_at(self, index: int) -> Optional[AIScript]:
        scripts = self.scripts
        if 0 <= index < len(scripts):
            return scripts[index]
        return None

    def product_by_sku(self, sku: str) -> Optional[LiveProduct]:
        for p in self.products:
            if p.sku == sku:
                return p
        return None

    def product_at(self, index: int) -> Optional[LiveProduct]:
        """설명 순서 index의 상품. 멘트에 연결된 SKU 우선."""
        ids = self.narration_ids()
        if 0 <= index < len(ids):
            found = self.product_by_sku(ids[index])
            if found is not None:
                return found
        products = self.products
        if 0 <= index < len(products):
            return products[index]
        return None


class LiveSessionStore:
    """활성 세션 + 히스토리(최대 max_sessions, 오래된 것부터 제거)."""

    def __init__(
        self,
        persistence: Optional[SessionPersistence] = None,
        max_sessions: int = MAX_SESSIONS,
        max_logs: int = MAX_LOGS,
    ):
        self.persistence = persistence
        self.max_sessions = max_sessions
        self.max_logs = max_logs
        self._sessions: List[LiveSession] = []  # 최근 것이 앞
        self._active_id: Optional[str] = None
        self._product_files: List[ProductFile] = []
        self._logs: List[LogEntry] = []
        self._listeners: List[Callable[[str], None]] = []

    # ---------- 변경 알림 ----------

    def add_listener(self, callback: Callable[[str], None]) -> None:
        """활성 세션 내용(상품/멘트)이나 활성 세션 자체가 바뀌면 callback(reason) 호출."""
        self._listeners.append(callback)

    def _notify(self, reason: str) -> None:
        for cb in list(self._listeners):
            try:
                cb(reason)
            except Exception as e:
                logger.error("저장소 리스너 오류 (%s): %s", reason, e, exc_info=True)

    # ---------- 저장/로드 ----------

    def load(self) -> None:
        """저장된 세션/상품 파일 로드. 실패해도 빈 상태로 계속."""
        if self.persistence is None:
            return
        try:
            sessions = self.persistence.load()
            files = self.persistence.load_product_files()
        except PersistenceError as e:
            logger.warning("세션 로드 실패, 메모리 상태로 시작: %s", e)
            self.add_log("warn", f"세션 기록 로드 실패: {e}")
            return
        self._sessions = sessions[: self.max_sessions]
        self._product_files = files
        logger.info("세션 %d개, 상품 파일 %d개 로드", len(self._sessions), len(files))

    def checkpoint(self) -> bool:
        """세션 목록 저장. 실패는 로그만 (False 반환)."""
        if self.persistence is None:
            return False
        try:
            self.persistence.save(list(self._sessions))
            return True
        except PersistenceError as e:
            logger.error("세션 저장 실패 (메모리로 계속): %s", e)
            self.add_log("error", f"세션 저장 실패: {e}")
            return False

    def _save_product_files(self) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save_product_files(list(self._product_files))
        except PersistenceError as e:
            logger.error("상품 파일 저장 실패: %s", e)

    # ---------- 세션 ----------

    @property
    def sessions(self) -> Sequence[LiveSession]:
        return tuple(self._sessions)

    @property
    def active(self) -> Optional[LiveSession]:
        if self._active_id is None:
            return None
        for s in self._sessions:
            if s.id == self._active_id:
                return s
        return None

    def view(self) -> SessionView:
        return SessionView(self.active)

    def create_session(
        self,
        broadcast_id: str,
        title: str,
        account_ref: str = "",
        scheduled_start: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> LiveSession:
        """라이브룸 생성 직후 호출. 새 세션을 활성화하고 히스토리 맨 앞에 둔다."""
        if scheduled_start is not None:
            check_start_time(scheduled_start, now=now)
        session = LiveSession(
            id=str(broadcast_id),
            title=title,
            account_ref=account_ref,
            scheduled_start=scheduled_start,
        )
        self._sessions = [s for s in self._sessions if s.id != session.id]
        self._sessions.insert(0, session)
        if len(self._sessions) > self.max_sessions:
            dropped = self._sessions[self.max_sessions:]
            self._sessions = self._sessions[: self.max_sessions]
            logger.info("히스토리 상한 초과로 오래된 세션 %d개 제거", len(dropped))
        self._active_id = session.id
        self.add_log("success", f"라이브룸 생성됨: {session.id}")
        self._notify("session")
        return session

    def select_session(self, session_id: str) -> LiveSession:
        for s in self._sessions:
            if s.id == session_id:
                self._active_id = s.id
                self._notify("session")
                return s
        raise LiveError(f"세션 없음: {session_id}")

    def delete_session(self, session_id: str) -> bool:
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        if self._active_id == session_id:
            self._active_id = None
            self._notify("session")
        return len(self._sessions) != before

    def _require_active(self) -> LiveSession:
        session = self.active
        if session is None:
            raise LiveError("활성 세션이 없습니다. 먼저 라이브룸을 생성하세요.")
        return session

    def append_products(self, products: Iterable[LiveProduct]) -> int:
        """수집 결과 추가 (추가만 가능)."""
        session = self._require_active()
        items = list(products)
        session.products.extend(items)
        self._notify("products")
        return len(items)

    def set_scripts(self, scripts: Iterable[AIScript]) -> List[AIScript]:
        """멘트 목록 교체. 비어 있는 내용은 대체 멘트로 채운다."""
        session = self._require_active()
        out: List[AIScript] = []
        for i, script in enumerate(scripts):
            if not (script.content or "").strip():
                logger.warning("빈 멘트 %d번 → 대체 문구 사용", i)
                script.content = fallback_script(i)
            out.append(script)
        session.scripts = out
        self._notify("scripts")
        return out

    # ---------- 상품 파일 ----------

    @property
    def product_files(self) -> Sequence[ProductFile]:
        return tuple(self._product_files)

    def add_product_file(self, file: ProductFile) -> ProductFile:
        self._product_files.append(file)
        self._save_product_files()
        self.add_log("info", f"상품 파일 가져옴 {file.name}: 전체 {file.total_count}개, 중복 제거 후 {file.unique_count}개")
        return file

    def remove_product_file(self, file_id: str) -> bool:
        before = len(self._product_files)
        self._product_files = [f for f in self._product_files if f.id != file_id]
        changed = len(self._product_files) != before
        if changed:
            self._save_product_files()
        return changed

    def update_quota(self, file_id: str, quota: int) -> ProductFile:
        """파일별 세션당 사용 수량 변경. FILE_USE_ALL 이상이면 전체."""
        if quota < 0:
            raise ValidationError(f"사용 수량은 0 이상이어야 합니다: {quota}")
        for f in self._product_files:
            if f.id == file_id:
                f.quota = min(int(quota), FILE_USE_ALL)
                self._save_product_files()
                return f
        raise LiveError(f"상품 파일 없음: {file_id}")

    # ---------- 실행 로그 ----------

    @property
    def logs(self) -> Sequence[LogEntry]:
        return tuple(self._logs)

    def add_log(self, level: str, message: str) -> LogEntry:
        """운영자 로그 추가. 최대 max_logs개, 넘치면 오래된 것부터 삭제."""
        if level not in _LOG_LEVELS:
            level = "info"
        entry = LogEntry(level=level, message=message)
        self._logs.append(entry)
        if len(self._logs) > self.max_logs:
            self._logs = self._logs[-self.max_logs:]
        return entry

    def clear_logs(self) -> None:
        self._logs = []


def check_start_time(start: datetime, now: Optional[datetime] = None) -> None:
    """개시 시간은 3분 후 ~ 30일 이내."""
    now = now or datetime.now()
    if start < now + timedelta(minutes=MIN_START_TIME_MINUTES):
        raise ValidationError(f"개시 시간은 최소 {MIN_START_TIME_MINUTES}분 이후여야 합니다")
    if start > now + timedelta(days=MAX_START_TIME_DAYS):
        raise ValidationError(f"개시 시간은 {MAX_START_TIME_DAYS}일 이내여야 합니다")
