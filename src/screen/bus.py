"""
화면 동기화용 이벤트 버스 (publish/subscribe)

- InProcessEventBus: 같은 프로세스 안에서만 전달
- SocketIOEventBus: 같은 채널 이름으로 Socket.IO 서버에도 emit, 원격 surface의 emit도 로컬 핸들러로 전달

전달은 best-effort. 핸들러 오류는 로그만 남기고 다른 핸들러에는 계속 전달.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import socketio

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class EventBus(ABC):
    """이벤트 버스 인터페이스. payload는 JSON 직렬화 가능해야 함."""

    @abstractmethod
    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        """채널 구독. 반환된 함수를 호출하면 구독 해제."""
        pass

    @abstractmethod
    async def publish(self, channel: str, payload: Any) -> None:
        pass


class InProcessEventBus(EventBus):
    """프로세스 내부 버스"""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(channel, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(channel)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, channel: str) -> int:
        return len(self._handlers.get(channel) or [])

    async def publish(self, channel: str, payload: Any) -> None:
        # 구독자마다 독립 사본 (직렬화 불가 payload는 여기서 TypeError)
        encoded = json.dumps(payload, ensure_ascii=False)
        await self._dispatch(channel, encoded)

    async def _dispatch(self, channel: str, encoded: str) -> None:
        for handler in list(self._handlers.get(channel) or []):
            try:
                result = handler(json.loads(encoded))
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("이벤트 핸들러 오류 [%s]: %s", channel, e, exc_info=True)


class SocketIOEventBus(InProcessEventBus):
    """
    Socket.IO 서버를 함께 쓰는 버스.
    publish: 로컬 핸들러 + sio.emit(channel, payload)
    원격 클라이언트가 emit(channel, data) 하면 해당 채널의 로컬 핸들러로 전달.
    """

    def __init__(self, server: Optional[socketio.AsyncServer] = None):
        super().__init__()
        self.server = server or socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins="*",
            logger=False,
            engineio_logger=False,
        )
        self._remote_channels: set = set()

    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        unsubscribe = super().subscribe(channel, handler)
        if channel not in self._remote_channels:
            self._remote_channels.add(channel)
            self.server.on(channel, self._make_remote_handler(channel))
        return unsubscribe

    def _make_remote_handler(self, channel: str):
        async def on_remote(sid, data=None):
            logger.debug("원격 이벤트 수신 [%s] sid=%s", channel, sid)
            try:
                encoded = json.dumps(data, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                logger.warning("원격 이벤트 payload 무시 [%s]: %s", channel, e)
                return
            await self._dispatch(channel, encoded)

        return on_remote

    async def publish(self, channel: str, payload: Any) -> None:
        await super().publish(channel, payload)
        try:
            await self.server.emit(channel, payload)
        except Exception as e:
            logger.warning("Socket.IO emit 실패 [%s]: %s", channel, e)
