"""
상품 설명 사이클 컨트롤러.

상태: idle → (preparing) → explaining → resting → explaining(다음 상품) ... → idle
- start/end는 JD 설명 시작/종료 API 호출. 호출 간격이 min_call_spacing 미만이면 즉시 거절(RateLimitRejection).
- "이미 설명 중" / "설명 시작 안 됨" 응답은 오류로 올리지 않고 상태를 맞춘다.
- 카운트다운은 1초 tick 하나로 구동. 새 카운트다운을 시작하면 이전 tick 루프는 종료.
- 자동 진행: 설명 카운트다운 끝 → end, 휴식 카운트다운 끝 → settle_delay 후 다음 상품 start.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, List, Optional

from .config import (
    DEFAULT_EXPLAIN_DURATION,
    DEFAULT_REST_DURATION,
    EXPLAIN_ACTION_DELAY,
    MIN_EXPLAIN_DURATION,
)
from .errors import NetworkError, RateLimitRejection, StateConflictError
from .models import ControllerState, CountdownState, Phase
from .store import LiveSessionStore

logger = logging.getLogger(__name__)


class ExplainCycleController:
    """
    설명 순서(SessionView.narration_ids)를 따라 상품 설명을 진행한다.

    gateway는 explain_begin(product_id) / explain_end(product_id) 코루틴을 가진 객체
    (JdLiveClient 또는 테스트용 가짜). listener는 상태가 바뀔 때 reason 문자열로 호출된다.
    """

    def __init__(
        self,
        gateway: Any,
        store: LiveSessionStore,
        *,
        min_explain_duration: float = MIN_EXPLAIN_DURATION,
        min_call_spacing: float = EXPLAIN_ACTION_DELAY,
        explain_duration: float = DEFAULT_EXPLAIN_DURATION,
        rest_duration: float = DEFAULT_REST_DURATION,
        settle_delay: float = EXPLAIN_ACTION_DELAY,
        auto_advance: bool = True,
        tick_interval: Optional[float] = 1.0,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            tick_interval: 카운트다운 tick 주기(초). None이면 tick 루프를 만들지 않음 (tick()을 직접 호출)
            clock: 카운트다운/설명 경과 시간용 시계 (epoch 초)
            monotonic: 호출 간격 제한용 시계
        """
        self.gateway = gateway
        self.store = store
        self.min_explain_duration = min_explain_duration
        self.min_call_spacing = min_call_spacing
        self.explain_duration = explain_duration
        self.rest_duration = rest_duration
        self.settle_delay = settle_delay
        self.auto_advance = auto_advance
        self.tick_interval = tick_interval
        self.clock = clock
        self._monotonic = monotonic

        self.state = ControllerState.IDLE
        self.current_index = 0
        self.explaining_product_id: Optional[str] = None
        self.started_at: Optional[float] = None
        self.countdown = CountdownState()

        self._paused_prior: Optional[ControllerState] = None
        self._last_call: Optional[float] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._advance_task: Optional[asyncio.Task] = None
        self._listeners: List[Callable] = []

    # ---------- 리스너 ----------

    def add_listener(self, callback: Callable) -> None:
        """상태 변경 콜백 등록. callback(reason) 동기/비동기 모두 가능."""
        self._listeners.append(callback)

    async def _emit(self, reason: str) -> None:
        for cb in list(self._listeners):
            try:
                result = cb(reason)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("상태 리스너 오류 (%s): %s", reason, e, exc_info=True)

    # ---------- 조회 ----------

    def narration_ids(self) -> List[str]:
        return self.store.view().narration_ids()

    def current_product_id(self) -> Optional[str]:
        ids = self.narration_ids()
        if 0 <= self.current_index < len(ids):
            return ids[self.current_index] or None
        return None

    @property
    def logical_state(self) -> ControllerState:
        """일시정지 중이면 일시정지 전 상태."""
        if self.state is ControllerState.PAUSED and self._paused_prior is not None:
            return self._paused_prior
        return self.state

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return max(0.0, self.clock() - self.started_at)

    # ---------- 호출 간격 ----------

    def _check_rate(self, action: str) -> None:
        now = self._monotonic()
        if self._last_call is not None:
            gap = now - self._last_call
            if gap < self.min_call_spacing:
                retry_after = self.min_call_spacing - gap
                logger.warning("%s 거절: 호출 간격 %.2f초 < %.2f초", action, gap, self.min_call_spacing)
                self.store.add_log("warn", f"조작이 너무 빠릅니다. {retry_after:.1f}초 후 다시 시도하세요")
                raise RateLimitRejection(f"{action} 호출이 너무 빠름", retry_after=retry_after)
        self._last_call = now

    # ---------- 설명 시작/종료 ----------

    async def start(self, product_id: Optional[str] = None) -> bool:
        """
        상품 설명 시작. idle/resting/preparing 에서만 가능.

        Returns:
            True: explaining 진입 (자가 복구 포함), False: 현재 상태에서 불가 또는 상품 없음
        Raises:
            RateLimitRejection: 직전 호출과 간격 부족
            NetworkError: API 실패 (상태 변화 없음)
        """
        if self.state not in (ControllerState.IDLE, ControllerState.RESTING, ControllerState.PREPARING):
            logger.info("설명 시작 무시: 현재 상태 %s", self.state.value)
            return False
        pid = product_id or self.current_product_id()
        if not pid:
            self.store.add_log("warn", "설명할 상품이 없습니다")
            return False

        self._check_rate("설명 시작")
        if self._advance_task is not None and self._advance_task is not asyncio.current_task():
            self._cancel_advance()

        try:
            await self.gateway.explain_begin(pid)
        except StateConflictError as e:
            # 시작 호출의 충돌은 종류와 관계없이 explaining 으로 맞춘다
            logger.info("이미 설명 중인 상품 → 상태 동기화: %s (%s)", pid, e.kind)
            self.store.add_log("info", f"이미 설명 중, 상태 동기화: {pid}")
        except NetworkError as e:
            logger.error("설명 시작 실패 %s: %s", pid, e)
            self.store.add_log("error", f"설명 시작 실패: {e}")
            raise
        else:
            self.store.add_log("success", f"설명 시작: {pid}")

        await self._enter_explaining(pid)
        return True

    async def _enter_explaining(self, pid: str) -> None:
        ids = self.narration_ids()
        if pid in ids:
            self.current_index = ids.index(pid)
        self.state = ControllerState.EXPLAINING
        self._paused_prior = None
        self.explaining_product_id = pid
        self.started_at = self.clock()
        if self.auto_advance:
            # 플랫폼 최소 설명 시간보다 짧게 끝내지 않음
            self._start_countdown(Phase.EXPLAIN, max(self.explain_duration, self.min_explain_duration))
        else:
            self._clear_countdown()
        await self._emit("explain_start")

    async def end(self, product_id: Optional[str] = None) -> bool:
        """
        상품 설명 종료. explaining 에서만 가능.
        자동 진행이면 resting(휴식 카운트다운), 아니면 idle.

        Raises:
            RateLimitRejection, NetworkError
        """
        if self.state is not ControllerState.EXPLAINING:
            logger.info("설명 종료 무시: 현재 상태 %s", self.state.value)
            return False
        pid = product_id or self.explaining_product_id or self.current_product_id()

        self._check_rate("설명 종료")
        try:
            await self.gateway.explain_end(pid)
        except StateConflictError as e:
            logger.info("설명이 시작되지 않은 상태 → idle 동기화: %s (%s)", pid, e.kind)
            self.store.add_log("info", f"설명 중 아님, 상태 동기화: {pid}")
            self._leave_explaining()
            self.state = ControllerState.IDLE
            self._clear_countdown()
            await self._emit("explain_end")
            return True
        except NetworkError as e:
            logger.error("설명 종료 실패 %s: %s", pid, e)
            self.store.add_log("error", f"설명 종료 실패: {e}")
            raise

        self.store.add_log("success", f"설명 종료: {pid}")
        self._leave_explaining()
        if self.auto_advance:
            self.state = ControllerState.RESTING
            self._start_countdown(Phase.REST, self.rest_duration)
        else:
            self.state = ControllerState.IDLE
            self._clear_countdown()
        await self._emit("explain_end")
        return True

    def _leave_explaining(self) -> None:
        self.explaining_product_id = None
        self.started_at = None

    async def _safe_start(self, pid: Optional[str]) -> bool:
        """자동 진행용 start. 실패하면 idle로 멈추고 로그만 남김."""
        try:
            return await self.start(pid)
        except (RateLimitRejection, NetworkError) as e:
            logger.warning("자동 설명 시작 실패, 진행 중단: %s", e)
            self.store.add_log("warn", f"자동 진행 중단: {e}")
            if self.state is not ControllerState.EXPLAINING:
                self.state = ControllerState.IDLE
                self._clear_countdown()
                await self._emit("stopped")
            return False

    async def _safe_end(self) -> bool:
        """설명 카운트다운 완료용 end. 실패하면 explaining 유지 (수동 종료 필요)."""
        try:
            return await self.end()
        except (RateLimitRejection, NetworkError) as e:
            logger.warning("자동 설명 종료 실패: %s", e)
            self.store.add_log("warn", f"자동 설명 종료 실패, 수동으로 종료하세요: {e}")
            await self._emit("countdown")
            return False

    # ---------- 카운트다운 ----------

    def _start_countdown(self, phase: Phase, seconds: float) -> None:
        self._stop_ticker()
        cd = self.countdown
        cd.phase = phase
        cd.target = self.clock() + max(0.0, seconds)
        cd.running = True
        cd.paused = False
        cd.paused_remaining = None
        if self.tick_interval:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("이벤트 루프 없음: tick 루프 없이 카운트다운 설정")
                return
            self._tick_task = loop.create_task(self._tick_loop())

    def _clear_countdown(self) -> None:
        self._stop_ticker()
        cd = self.countdown
        cd.target = None
        cd.running = False
        cd.paused = False
        cd.paused_remaining = None

    def _stop_ticker(self) -> None:
        task = self._tick_task
        self._tick_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _tick_loop(self) -> None:
        me = asyncio.current_task()
        while self._tick_task is me:
            try:
                await asyncio.sleep(self.tick_interval)
            except asyncio.CancelledError:
                break
            if self._tick_task is not me:
                break
            try:
                await self.tick()
            except Exception as e:
                logger.error("카운트다운 처리 오류: %s", e, exc_info=True)

    async def tick(self) -> None:
        """카운트다운 확인. 목표 시각을 지났으면 단계 완료 처리."""
        cd = self.countdown
        if not cd.running or cd.target is None:
            return
        if cd.target > self.clock():
            return
        phase = cd.phase
        self._clear_countdown()
        logger.info("카운트다운 완료: %s", phase.value)
        await self._on_countdown_complete(phase)

    async def _on_countdown_complete(self, phase: Phase) -> None:
        if phase is Phase.PREPARE:
            if self.state is not ControllerState.PREPARING:
                return
            self.state = ControllerState.IDLE
            self.store.add_log("info", "개시 시간 도달")
            await self._emit("prepare_done")
            if self.auto_advance:
                await self._safe_start(self.current_product_id())
        elif phase is Phase.EXPLAIN:
            if self.state is ControllerState.EXPLAINING:
                await self._safe_end()
        elif phase is Phase.REST:
            if self.state is not ControllerState.RESTING:
                return
            ids = self.narration_ids()
            if self.current_index + 1 < len(ids):
                self.current_index += 1
                next_pid = ids[self.current_index]
                await self._emit("advance")
                if self.settle_delay <= 0:
                    await self._safe_start(next_pid)
                else:
                    self._advance_task = asyncio.get_running_loop().create_task(
                        self._advance_after_settle(next_pid)
                    )
            else:
                self.state = ControllerState.IDLE
                self.store.add_log("success", "모든 상품 설명 완료")
                await self._emit("finished")

    async def _advance_after_settle(self, pid: str) -> None:
        try:
            await asyncio.sleep(self.settle_delay)
            if self.state is ControllerState.RESTING:
                await self._safe_start(pid)
        finally:
            if self._advance_task is asyncio.current_task():
                self._advance_task = None

    def _cancel_advance(self) -> None:
        task = self._advance_task
        self._advance_task = None
        if task is not None and not task.done():
            task.cancel()

    # ---------- 일시정지 ----------

    async def pause(self) -> bool:
        """진행 중인 카운트다운을 멈춘다. 남은 시간과 단계는 유지."""
        cd = self.countdown
        if self.state is ControllerState.PAUSED or not cd.running or cd.target is None:
            return False
        remaining = max(0.0, cd.target - self.clock())
        self._stop_ticker()
        cd.paused = True
        cd.paused_remaining = remaining
        cd.target = None
        cd.running = False
        self._paused_prior = self.state
        self.state = ControllerState.PAUSED
        logger.info("일시정지: %s 단계, 남은 %.1f초", cd.phase.value, remaining)
        await self._emit("pause")
        return True

    async def resume(self) -> bool:
        """남은 시간으로 카운트다운 재개."""
        cd = self.countdown
        if self.state is not ControllerState.PAUSED:
            return False
        remaining = cd.paused_remaining or 0.0
        self.state = self._paused_prior or ControllerState.IDLE
        self._paused_prior = None
        self._start_countdown(cd.phase, remaining)
        logger.info("재개: %s 단계, 남은 %.1f초", cd.phase.value, remaining)
        await self._emit("resume")
        return True

    # ---------- 수동 전환 ----------

    async def switch_next(self) -> bool:
        """
        다음 멘트로 포인터 이동 (API 호출 없음).
        자동 진행 + 설명 중 + 최소 설명 시간 미달이면 거절.
        """
        if (
            self.auto_advance
            and self.logical_state is ControllerState.EXPLAINING
            and self.elapsed() < self.min_explain_duration
        ):
            wait = self.min_explain_duration - self.elapsed()
            logger.info("다음 상품 전환 거절: 설명 %.1f초 경과", self.elapsed())
            self.store.add_log("warn", f"최소 설명 시간 미달, {wait:.0f}초 후 전환 가능")
            return False
        if self.current_index + 1 >= len(self.narration_ids()):
            return False
        self.current_index += 1
        await self._emit("switch")
        return True

    async def switch_prev(self) -> bool:
        """이전 멘트로 포인터 이동. 시간 제한 없음."""
        if self.current_index <= 0:
            return False
        self.current_index -= 1
        await self._emit("switch")
        return True

    # ---------- 준비/정지 ----------

    async def prepare(self, start_at: datetime) -> bool:
        """개시 시간까지 준비 카운트다운. idle 에서만 가능."""
        if self.state is not ControllerState.IDLE:
            return False
        seconds = max(0.0, start_at.timestamp() - self.clock())
        self.state = ControllerState.PREPARING
        self._start_countdown(Phase.PREPARE, seconds)
        self.store.add_log("info", f"개시 대기: {seconds:.0f}초 후 시작")
        await self._emit("prepare")
        return True

    async def stop(self) -> None:
        """
        예약된 다음 설명과 카운트다운을 모두 취소.
        설명 중인 상품은 그대로 (종료는 end로).
        """
        self._cancel_advance()
        self._clear_countdown()
        prior = self.logical_state
        if prior is ControllerState.EXPLAINING:
            self.state = ControllerState.EXPLAINING
        else:
            self.state = ControllerState.IDLE
        self._paused_prior = None
        logger.info("진행 정지: 상태 %s", self.state.value)
        await self._emit("stopped")

    async def set_auto_advance(self, enabled: bool) -> None:
        if enabled == self.auto_advance:
            return
        self.auto_advance = enabled
        self.store.add_log("info", "자동 진행 켜짐" if enabled else "자동 진행 꺼짐")
        if not enabled:
            await self.stop()
