"""
투사 화면(surface) 창 관리

데스크톱 창 대신 OBS 브라우저 소스로 띄우는 것이 기본.
OverlayWindowManager는 창을 직접 만들지 않고 브라우저 소스에 넣을 URL을 발급/회수한다.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_PARAMS: Dict[str, Any] = {
    "title": "라이브 투사 화면",
    "width": 720,
    "height": 1280,
    "transparent": True,
    "alwaysOnTop": False,
    "decorations": False,
    "resizable": True,
}


class WindowManager(ABC):
    """surface 생성/제거 인터페이스"""

    @abstractmethod
    def open(self, surface_id: str, params: Dict[str, Any]) -> Any:
        """surface 생성 후 핸들 반환. 같은 ID가 이미 있으면 먼저 닫는다."""
        pass

    @abstractmethod
    def close(self, surface_id: str) -> None:
        pass


class OverlayWindowManager(WindowManager):
    """
    오버레이 서버의 /screen/{id} 페이지 URL을 핸들로 반환.
    OBS에서 이 URL을 브라우저 소스로 추가하면 된다.
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8765"):
        self.base_url = base_url.rstrip("/")
        self.opened: Dict[str, str] = {}

    def url_for(self, surface_id: str, params: Optional[Dict[str, Any]] = None) -> str:
        query = {k: _query_value(v) for k, v in (params or {}).items() if v is not None}
        suffix = f"?{urlencode(query)}" if query else ""
        return f"{self.base_url}/screen/{surface_id}{suffix}"

    def open(self, surface_id: str, params: Dict[str, Any]) -> str:
        if surface_id in self.opened:
            self.close(surface_id)
        merged = {**DEFAULT_WINDOW_PARAMS, **(params or {})}
        url = self.url_for(surface_id, merged)
        self.opened[surface_id] = url
        logger.info("투사 화면 열림 [%s]: %s", surface_id, url)
        return url

    def close(self, surface_id: str) -> None:
        if self.opened.pop(surface_id, None) is not None:
            logger.info("투사 화면 닫힘 [%s]", surface_id)


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)
