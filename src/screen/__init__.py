"""
투사 화면(OBS 브라우저 소스) 동기화.

- ScreenSyncHub: 컨트롤러 상태 → surface snapshot/delta
- create_app: /screen/{id} 페이지 + /api/screen/{id}/... (기본 포트 8765)
"""

from src.screen.bus import EventBus, InProcessEventBus, SocketIOEventBus
from src.screen.hub import STATE_CHANNEL, ScreenMirror, ScreenSyncHub, inbound_channel, project_screen_state
from src.screen.window import OverlayWindowManager, WindowManager

__all__ = [
    "STATE_CHANNEL",
    "EventBus",
    "InProcessEventBus",
    "OverlayWindowManager",
    "ScreenMirror",
    "ScreenSyncHub",
    "SocketIOEventBus",
    "WindowManager",
    "inbound_channel",
    "project_screen_state",
]
