"""
투사 화면 동기화 허브

컨트롤러/세션 상태 일부(현재 이미지, 멘트, 카운트다운)를 여러 surface에 미러링한다.

채널:
- screen.state          허브 → surface (snapshot / delta 방송)
- screen.<id>.in        surface → 허브 (ready / next / prev / closed)

surface가 ready를 보내면 전체 snapshot을 먼저 보내고, 그 뒤부터 해당 surface에 delta를 보낸다.
surface는 상태를 직접 바꾸지 않는다. next/prev는 컨트롤러 요청으로만 전달.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from src.live.explain import ExplainCycleController
from src.live.store import DEFAULT_SCRIPT, LiveSessionStore, SessionView

from .bus import EventBus
from .window import WindowManager

logger = logging.getLogger(__name__)

STATE_CHANNEL = "screen.state"

# ScreenMirror.received 에 남기는 최근 메시지 종류 수
MIRROR_HISTORY = 50


def inbound_channel(surface_id: str) -> str:
    return f"screen.{surface_id}.in"


def project_screen_state(view: SessionView, controller: ExplainCycleController) -> Dict[str, Any]:
    """surface에 보여줄 상태 (JSON 직렬화 가능한 dict)"""
    index = controller.current_index
    total = view.narration_count
    product = view.product_at(index)
    script = view.script_at(index)
    if script is not None:
        content = script.content
    else:
        content = DEFAULT_SCRIPT if total == 0 else ""
    cd = controller.countdown
    return {
        "imageUrl": product.image_url if product else "",
        "productId": controller.current_product_id(),
        "title": product.title if product else "",
        "script": {"index": index, "total": total, "content": content},
        "countdown": {
            "targetTs": cd.target,
            "running": cd.running,
            "paused": cd.paused,
            "pausedRemaining": cd.paused_remaining,
            "phase": cd.phase.value,
        },
        "state": controller.state.value,
    }


def diff_state(old: Optional[Dict[str, Any]], new: Dict[str, Any]) -> Dict[str, Any]:
    """최상위 키 단위 변경분"""
    old = old or {}
    return {k: v for k, v in new.items() if old.get(k) != v}


@dataclass
class SurfaceRecord:
    surface_id: str
    handle: Any = None
    active: bool = True
    ready: bool = False
    unsubscribe: Optional[Callable[[], None]] = None


class ScreenSyncHub:
    """surface 등록/해제, snapshot/delta 전송, 제어 요청 전달"""

    def __init__(
        self,
        store: LiveSessionStore,
        controller: ExplainCycleController,
        bus: EventBus,
        window_manager: Optional[WindowManager] = None,
    ):
        self.store = store
        self.controller = controller
        self.bus = bus
        self.window_manager = window_manager
        self._surfaces: Dict[str, SurfaceRecord] = {}
        self._seq = 0
        self._last_state: Optional[Dict[str, Any]] = None
        self._refresh_tasks: Set[asyncio.Task] = set()
        controller.add_listener(self._on_controller_change)
        store.add_listener(self._on_store_change)

    async def _on_controller_change(self, reason: str) -> None:
        logger.debug("컨트롤러 변경 → push (%s)", reason)
        await self.push()

    def _on_store_change(self, reason: str) -> None:
        """상품/멘트/활성 세션 변경 → ready surface 전체에 snapshot 재전송 (루프 밖이면 다음 ready 때 반영)."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("이벤트 루프 없음: 저장소 변경 refresh 생략 (%s)", reason)
            return
        task = loop.create_task(self.refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    def current_state(self) -> Dict[str, Any]:
        return project_screen_state(self.store.view(), self.controller)

    # ---------- surface 등록 ----------

    def surface(self, surface_id: str) -> Optional[SurfaceRecord]:
        return self._surfaces.get(surface_id)

    def active_surfaces(self) -> List[str]:
        return [s.surface_id for s in self._surfaces.values() if s.active]

    def attach_surface(self, surface_id: str) -> SurfaceRecord:
        """외부에서 만들어진 surface(예: OBS 브라우저 소스)를 등록. inbound 채널 구독."""
        record = self._surfaces.get(surface_id)
        if record is not None and record.active:
            return record
        record = SurfaceRecord(surface_id=surface_id)

        async def on_inbound(message):
            await self._on_inbound(surface_id, message)

        record.unsubscribe = self.bus.subscribe(inbound_channel(surface_id), on_inbound)
        self._surfaces[surface_id] = record
        logger.info("투사 화면 등록: %s", surface_id)
        return record

    async def open_surface(self, surface_id: str, **params) -> Any:
        """WindowManager로 surface 생성. 같은 ID가 열려 있으면 먼저 닫는다."""
        existing = self._surfaces.get(surface_id)
        if existing is not None and existing.active:
            await self.close_surface(surface_id)
        handle = self.window_manager.open(surface_id, params) if self.window_manager else None
        record = self.attach_surface(surface_id)
        record.handle = handle
        return handle

    async def close_surface(self, surface_id: str) -> None:
        if self.window_manager is not None:
            try:
                self.window_manager.close(surface_id)
            except Exception as e:
                logger.warning("투사 화면 닫기 실패 [%s]: %s", surface_id, e)
        await self.on_surface_closed(surface_id)

    async def on_surface_closed(self, surface_id: str) -> None:
        """surface 닫힘 통지. 비활성 처리 후 더 이상 push 하지 않음."""
        record = self._surfaces.get(surface_id)
        if record is None or not record.active:
            return
        record.active = False
        record.ready = False
        if record.unsubscribe is not None:
            record.unsubscribe()
            record.unsubscribe = None
        logger.info("투사 화면 닫힘: %s", surface_id)

    # ---------- inbound ----------

    async def _on_inbound(self, surface_id: str, message: Any) -> None:
        kind = message.get("type") if isinstance(message, dict) else message
        record = self._surfaces.get(surface_id)
        if record is None or not record.active:
            logger.debug("비활성 surface 메시지 무시 [%s]: %s", surface_id, kind)
            return
        if kind == "ready":
            await self.send_snapshot(surface_id)
        elif kind == "next":
            accepted = await self.controller.switch_next()
            logger.info("surface 다음 요청 [%s]: %s", surface_id, "수락" if accepted else "거절")
        elif kind == "prev":
            accepted = await self.controller.switch_prev()
            logger.info("surface 이전 요청 [%s]: %s", surface_id, "수락" if accepted else "거절")
        elif kind == "closed":
            await self.on_surface_closed(surface_id)
        else:
            logger.warning("알 수 없는 surface 메시지 [%s]: %s", surface_id, message)

    # ---------- outbound ----------

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    async def send_snapshot(self, surface_id: str) -> None:
        """전체 상태 전송. 전송 후부터 이 surface는 delta 대상."""
        record = self._surfaces.get(surface_id)
        if record is None or not record.active:
            return
        await self.bus.publish(STATE_CHANNEL, {
            "type": "snapshot",
            "surfaceId": surface_id,
            "seq": self._next_seq(),
            "state": self.current_state(),
        })
        record.ready = True

    async def push(self) -> None:
        """직전 push 이후 바뀐 부분만 ready 상태인 surface들에 방송."""
        state = self.current_state()
        changes = diff_state(self._last_state, state)
        self._last_state = state
        if not changes:
            return
        targets = [s.surface_id for s in self._surfaces.values() if s.active and s.ready]
        if not targets:
            return
        await self.bus.publish(STATE_CHANNEL, {
            "type": "delta",
            "surfaceIds": targets,
            "seq": self._next_seq(),
            "changes": changes,
        })

    async def refresh(self) -> None:
        """세션 내용(상품/멘트)이 바뀌었을 때 ready 상태 surface 전체에 snapshot 재전송."""
        self._last_state = self.current_state()
        for record in list(self._surfaces.values()):
            if record.active and record.ready:
                await self.send_snapshot(record.surface_id)


class ScreenMirror:
    """
    surface 쪽 클라이언트. snapshot을 받은 뒤에만 delta를 적용한다.
    오버레이 서버가 surface마다 하나씩 들고 있다가 페이지 폴링에 state를 돌려준다.
    """

    def __init__(self, bus: EventBus, surface_id: str):
        self.bus = bus
        self.surface_id = surface_id
        self.state: Dict[str, Any] = {}
        self.synced = False
        self.last_seq = 0
        self.received: List[str] = []
        self._unsubscribe = bus.subscribe(STATE_CHANNEL, self._on_message)

    def _on_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "snapshot":
            if message.get("surfaceId") != self.surface_id:
                return
            self.state = dict(message.get("state") or {})
            self.synced = True
        elif kind == "delta":
            if self.surface_id not in (message.get("surfaceIds") or []):
                return
            if not self.synced:
                logger.debug("snapshot 전 delta 무시 [%s]", self.surface_id)
                return
            self.state.update(message.get("changes") or {})
        else:
            return
        self.last_seq = int(message.get("seq") or 0)
        self.received.append(kind)
        del self.received[:-MIRROR_HISTORY]

    async def _send(self, kind: str) -> None:
        await self.bus.publish(inbound_channel(self.surface_id), {"type": kind})

    async def ready(self) -> None:
        """초기화/새로고침 시 호출. 허브가 snapshot으로 응답."""
        self.synced = False
        await self._send("ready")

    async def request_next(self) -> None:
        await self._send("next")

    async def request_prev(self) -> None:
        await self._send("prev")

    async def notify_closed(self) -> None:
        await self._send("closed")
        self.detach()

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.synced = False
