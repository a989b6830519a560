"""
JD 라이브 콘솔(drlives.jd.com) API 클라이언트
브라우저 로그인 쿠키를 그대로 Cookie 헤더로 보낸다.

공통 응답: {"success": bool, "code": int, "errorMsg": str | null, ...}
success=false 는 NetworkError, 설명 시작/종료의 상태 충돌은 StateConflictError.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import httpx

from src.live.errors import NetworkError, StateConflictError
from src.live.models import AddCartResult

logger = logging.getLogger(__name__)

CookieInput = Union[str, Mapping[str, str], Iterable[Tuple[str, str]]]

# 설명 API 오류 메시지 → 상태 충돌 종류. 부정 표현을 먼저 본다 ("未在讲解中"는 讲解中을 포함).
_NOT_EXPLAINING_MARKERS = ("未在讲解", "未讲解", "未开始", "not started", "not explaining")
_ALREADY_EXPLAINING_MARKERS = ("正在讲解", "讲解中", "already")


def cookies_to_header(cookies: CookieInput) -> str:
    """쿠키 목록/딕셔너리 → 'a=1; b=2' 헤더 문자열"""
    if isinstance(cookies, str):
        return cookies.strip()
    items = cookies.items() if isinstance(cookies, Mapping) else cookies
    return "; ".join(f"{name}={value}" for name, value in items)


def classify_explain_error(message: str, begin: bool) -> Optional[str]:
    """
    설명 API 오류 메시지가 상태 충돌이면 종류 반환, 아니면 None.
    시작 호출은 already_explaining, 종료 호출은 not_started 로만 분류된다.
    """
    text = (message or "").lower()
    not_explaining = any(m in text for m in _NOT_EXPLAINING_MARKERS)
    if begin:
        if not not_explaining and any(m in text for m in _ALREADY_EXPLAINING_MARKERS):
            return StateConflictError.ALREADY_EXPLAINING
        return None
    return StateConflictError.NOT_STARTED if not_explaining else None


class JdLiveClient:
    """JD 라이브 콘솔 API 클래스"""

    BASE_URL = "https://drlives.jd.com"
    USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    )

    AUTHOR_INFO_PATH = "/console/homePage/newGetAuthorInfo"
    RECENT_ROOMS_PATH = "/live/pc/recentUsedIndex"
    CREATE_LIVE_PATH = "/live/live-create"
    UPLOAD_SKU_PATH = "/live-shopping-bag/sku/uploadSku"
    ADD_SKU_PATH = "/live-shopping-bag/sku/add"
    GENERAL_DATA_PATH = "/liveRealTimeGeneralData/generalData"
    H5_PATH = "/h5"
    EXPLAIN_BEGIN_PATH = "/live/pc/explainBegin"
    EXPLAIN_END_PATH = "/live/pc/explainEnd"

    # 라이브룸 생성 기본값 (세로 화면, 설명 가능)
    LIVE_DEFAULTS = {"type": 69, "screen": 0, "test": 0, "canExplain": 1, "preVideoType": 0, "pcVersion": 1}

    def __init__(
        self,
        cookies: CookieInput,
        live_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ):
        """
        Args:
            cookies: 로그인 쿠키 (헤더 문자열, dict, (name, value) 목록)
            live_id: 상품/설명 API에 쓸 라이브룸 ID (create_live_room 후 자동 설정)
            transport: httpx 전송 계층 (테스트에서 MockTransport 주입)
            timeout: 요청 타임아웃(초)
        """
        self.cookie_header = cookies_to_header(cookies)
        self.live_id = str(live_id) if live_id else None
        self.transport = transport
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self.USER_AGENT,
            "Referer": f"{self.BASE_URL}/",
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json",
        }
        if self.cookie_header:
            headers["Cookie"] = self.cookie_header
        return headers

    def bind_live(self, live_id: str) -> None:
        self.live_id = str(live_id)

    def _require_live_id(self) -> str:
        if not self.live_id:
            raise NetworkError("라이브룸 ID가 없습니다. 먼저 라이브룸을 생성/선택하세요.")
        return self.live_id

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """요청 후 JSON dict 반환. 전송/HTTP/파싱 오류는 NetworkError."""
        url = f"{self.BASE_URL}{path}"
        try:
            async with httpx.AsyncClient(
                headers=self._headers(), timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(method, url, params=params, json=json)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("[%s] 요청 실패: %s", action, e)
            raise NetworkError(f"{action} 요청 실패: {e}") from e
        except ValueError as e:
            logger.error("[%s] 응답 파싱 실패: %s", action, e)
            raise NetworkError(f"{action} 응답 파싱 실패: {e}") from e
        if not isinstance(data, dict):
            raise NetworkError(f"{action} 응답 형식 오류: {data!r}")
        logger.debug("[%s] 응답: %s", action, data)
        return data

    @staticmethod
    def _error_message(data: Dict[str, Any], default: str) -> str:
        return str(data.get("errorMsg") or data.get("message") or default)

    def _check(self, data: Dict[str, Any], action: str, default_error: str) -> Dict[str, Any]:
        if data.get("success"):
            return data
        message = self._error_message(data, default_error)
        logger.warning("[%s] 실패 (code=%s): %s", action, data.get("code"), message)
        raise NetworkError(message, code=data.get("code"))

    # ---------- 계정/라이브룸 ----------

    async def verify_login(self) -> Dict[str, Any]:
        """
        로그인 상태 확인. 실패해도 예외 대신 is_logged_in=False.

        Returns:
            {"is_logged_in": bool, "nickname": str | None, "avatar": str | None}
        """
        data = await self._request("GET", self.AUTHOR_INFO_PATH, "로그인 확인")
        author = data.get("authorInfo") if data.get("success") else None
        if author:
            logger.info("JD 로그인 확인: %s", author.get("name"))
            return {"is_logged_in": True, "nickname": author.get("name"), "avatar": author.get("pic")}
        logger.info("JD 미로그인: %s", data.get("errorMsg"))
        return {"is_logged_in": False, "nickname": None, "avatar": None}

    async def get_recent_live_rooms(self) -> List[Dict[str, Any]]:
        data = self._check(
            await self._request("GET", self.RECENT_ROOMS_PATH, "최근 라이브룸"),
            "최근 라이브룸", "조회 실패",
        )
        body = data.get("data") or {}
        return list(body.get("liveList") or [])

    async def create_live_room(
        self,
        title: str,
        cover_url: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> str:
        """라이브룸 생성 후 live_id 반환 (이 클라이언트에도 바인딩)"""
        payload = {
            **self.LIVE_DEFAULTS,
            "title": title,
            "coverUrl": cover_url,
            "startTime": start_time,
            "endTime": end_time,
        }
        data = self._check(
            await self._request("POST", self.CREATE_LIVE_PATH, "라이브룸 생성", json=payload),
            "라이브룸 생성", "생성 실패",
        )
        live_id = data.get("liveId") or (data.get("data") or {}).get("liveId")
        if not live_id:
            raise NetworkError(f"라이브룸 생성 응답에 liveId 없음: {data}")
        self.bind_live(str(live_id))
        logger.info("라이브룸 생성: %s (%s)", live_id, title)
        return str(live_id)

    async def get_live_general_data(self, live_id: Optional[str] = None) -> Dict[str, Any]:
        lid = live_id or self._require_live_id()
        data = self._check(
            await self._request("GET", self.GENERAL_DATA_PATH, "실시간 데이터", params={"liveId": lid}),
            "실시간 데이터", "조회 실패",
        )
        return dict(data.get("data") or {})

    async def get_h5_url(self, live_id: Optional[str] = None) -> str:
        lid = live_id or self._require_live_id()
        data = self._check(
            await self._request("GET", self.H5_PATH, "H5 페이지", params={"liveId": lid}),
            "H5 페이지", "조회 실패",
        )
        url = data.get("url")
        if not url:
            raise NetworkError("H5 페이지 URL 없음")
        return str(url)

    # ---------- 상품 ----------

    async def fetch_details(self, sku_ids: List[str]) -> List[Dict[str, Any]]:
        """
        SKU ID 목록 업로드 → 유효한 상품 상세 목록.
        무효 ID는 응답에서 빠진다 (오류 아님).
        """
        lid = self._require_live_id()
        payload = {"liveId": lid, "skuIds": [str(s) for s in sku_ids]}
        data = self._check(
            await self._request("POST", self.UPLOAD_SKU_PATH, "상품 조회", json=payload),
            "상품 조회", "상품 조회 실패",
        )
        body = data.get("data")
        if isinstance(body, dict):
            body = body.get("skuList") or body.get("list") or []
        details = [d for d in (body or []) if isinstance(d, dict)]
        logger.info("상품 조회: 요청 %d개 → 유효 %d개", len(sku_ids), len(details))
        return details

    async def add_to_cart(self, details: List[Dict[str, Any]]) -> AddCartResult:
        """
        상품 상세 목록을 장바구니(购物袋)에 일괄 추가.
        일부만 성공하면 successCount < 요청 수 + errorMsg.
        """
        lid = self._require_live_id()
        sku_ids = [str(d.get("skuId") or d.get("sku") or d.get("id")) for d in details]
        payload = {"liveId": lid, "skuIds": sku_ids}
        data = self._check(
            await self._request("POST", self.ADD_SKU_PATH, "장바구니 추가", json=payload),
            "장바구니 추가", "추가 실패",
        )
        body = data.get("data") if isinstance(data.get("data"), dict) else data
        count = body.get("successCount")
        if count is None:
            count = len(sku_ids)
        return AddCartResult(success_count=int(count), error_message=body.get("errorMsg") or None)

    # ---------- 설명 ----------

    async def _explain(self, path: str, action: str, sku_id: str, begin: bool) -> None:
        lid = self._require_live_id()
        data = await self._request("POST", path, action, json={"liveId": lid, "skuId": str(sku_id)})
        if data.get("success"):
            logger.info("[%s] %s", action, sku_id)
            return
        message = self._error_message(data, f"{action} 실패")
        kind = classify_explain_error(message, begin)
        if kind is not None:
            raise StateConflictError(message, kind)
        logger.warning("[%s] 실패 (code=%s): %s", action, data.get("code"), message)
        raise NetworkError(message, code=data.get("code"))

    async def explain_begin(self, sku_id: str) -> None:
        """
        상품 설명 시작

        Raises:
            StateConflictError: 이미 설명 중 (kind=already_explaining)
            NetworkError: 그 외 실패
        """
        await self._explain(self.EXPLAIN_BEGIN_PATH, "설명 시작", sku_id, begin=True)

    async def explain_end(self, sku_id: str) -> None:
        """
        상품 설명 종료

        Raises:
            StateConflictError: 설명이 시작되지 않음 (kind=not_started)
            NetworkError: 그 외 실패
        """
        await self._explain(self.EXPLAIN_END_PATH, "설명 종료", sku_id, begin=False)
