"""공용 fixture: 가짜 게이트웨이/시계/창 관리자, 상품 3개가 든 세션 저장소."""

from typing import Any, Dict, List, Optional, Set

import pytest

from src.live.errors import NetworkError
from src.live.explain import ExplainCycleController
from src.live.models import AddCartResult, AIScript, LiveProduct
from src.live.store import LiveSessionStore
from src.screen.window import WindowManager


class FakeClock:
    """clock/monotonic 양쪽에 넘기는 수동 시계"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExplainGateway:
    """explain_begin/explain_end 호출 기록. errors 큐에 넣은 예외를 순서대로 발생."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.begin_errors: List[Exception] = []
        self.end_errors: List[Exception] = []

    async def explain_begin(self, product_id: str) -> None:
        self.calls.append(("begin", product_id))
        if self.begin_errors:
            raise self.begin_errors.pop(0)

    async def explain_end(self, product_id: str) -> None:
        self.calls.append(("end", product_id))
        if self.end_errors:
            raise self.end_errors.pop(0)


class FakeCatalogGateway:
    """
    fetch_details: valid 집합에 있는 ID만 상세로 반환.
    add_to_cart: add_results 큐가 비면 전부 성공.
    """

    def __init__(self, valid: Optional[Set[str]] = None):
        self.valid = valid
        self.fetch_calls: List[List[str]] = []
        self.add_calls: List[List[str]] = []
        self.fetch_errors: List[Optional[Exception]] = []
        self.add_results: List[Any] = []

    async def fetch_details(self, ids: List[str]) -> List[Dict[str, Any]]:
        self.fetch_calls.append(list(ids))
        if self.fetch_errors:
            err = self.fetch_errors.pop(0)
            if err is not None:
                raise err
        return [
            {"skuId": i, "skuName": f"상품 {i}", "imageUrl": f"https://img.example/{i}.jpg", "price": "9.9"}
            for i in ids
            if self.valid is None or i in self.valid
        ]

    async def add_to_cart(self, details: List[Dict[str, Any]]) -> AddCartResult:
        self.add_calls.append([d["skuId"] for d in details])
        if self.add_results:
            result = self.add_results.pop(0)
            if isinstance(result, Exception):
                raise result
            if callable(result):
                return result(details)
            return result
        return AddCartResult(success_count=len(details))


class FakeWindowManager(WindowManager):
    def __init__(self):
        self.opened: List[str] = []
        self.closed: List[str] = []

    def open(self, surface_id: str, params: Dict[str, Any]) -> str:
        self.opened.append(surface_id)
        return f"handle-{surface_id}-{len(self.opened)}"

    def close(self, surface_id: str) -> None:
        self.closed.append(surface_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeExplainGateway:
    return FakeExplainGateway()


@pytest.fixture
def catalog_gateway() -> FakeCatalogGateway:
    return FakeCatalogGateway()


@pytest.fixture
def window_manager() -> FakeWindowManager:
    return FakeWindowManager()


@pytest.fixture
def empty_store() -> LiveSessionStore:
    store = LiveSessionStore()
    store.create_session("live-1", "테스트 방송")
    return store


@pytest.fixture
def session_store() -> LiveSessionStore:
    """상품 p1, p2, p3 + 멘트 3개"""
    store = LiveSessionStore()
    store.create_session("live-1", "테스트 방송")
    store.append_products(
        LiveProduct(sku=f"p{i}", title=f"상품 {i}", image_url=f"https://img.example/p{i}.jpg")
        for i in (1, 2, 3)
    )
    store.set_scripts(AIScript(content=f"멘트 {i}", related_product_id=f"p{i}") for i in (1, 2, 3))
    return store


@pytest.fixture
def make_controller(session_store, gateway, clock):
    """tick 루프 없는 컨트롤러 (tick()을 직접 호출)"""

    def factory(**overrides) -> ExplainCycleController:
        kwargs = dict(
            min_explain_duration=63.0,
            min_call_spacing=1.5,
            explain_duration=70.0,
            rest_duration=10.0,
            settle_delay=0.0,
            auto_advance=True,
            tick_interval=None,
            clock=clock,
            monotonic=clock,
        )
        kwargs.update(overrides)
        store = kwargs.pop("store", session_store)
        gw = kwargs.pop("gateway", gateway)
        return ExplainCycleController(gw, store, **kwargs)

    return factory


@pytest.fixture
def network_error() -> NetworkError:
    return NetworkError("네트워크 오류", code=500)
