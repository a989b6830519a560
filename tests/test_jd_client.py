"""JdLiveClient 테스트 (httpx.MockTransport)"""

import json

import httpx
import pytest

from src.jd.client import JdLiveClient, classify_explain_error, cookies_to_header
from src.live.errors import NetworkError, StateConflictError


class Recorder:
    """경로별 응답을 돌려주고 요청을 기록"""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def body(self, index=-1):
        return json.loads(self.requests[index].content)


def _client(routes, live_id="live-1", cookies="pt_key=abc; pt_pin=shop"):
    recorder = Recorder(routes)
    client = JdLiveClient(cookies, live_id=live_id, transport=httpx.MockTransport(recorder))
    return client, recorder


def test_cookies_to_header_accepts_several_shapes():
    assert cookies_to_header(" a=1; b=2 ") == "a=1; b=2"
    assert cookies_to_header({"a": "1", "b": "2"}) == "a=1; b=2"
    assert cookies_to_header([("pt_key", "x")]) == "pt_key=x"


def test_classify_explain_error_per_action():
    assert classify_explain_error("商品正在讲解中", begin=True) == StateConflictError.ALREADY_EXPLAINING
    assert classify_explain_error("Product is Already explaining", begin=True) == StateConflictError.ALREADY_EXPLAINING
    assert classify_explain_error("讲解未开始", begin=False) == StateConflictError.NOT_STARTED
    assert classify_explain_error("系统繁忙", begin=True) is None
    assert classify_explain_error("系统繁忙", begin=False) is None


def test_negated_phrase_is_not_already_explaining():
    assert classify_explain_error("该商品未在讲解中", begin=False) == StateConflictError.NOT_STARTED
    assert classify_explain_error("该商品未在讲解中", begin=True) is None
    assert classify_explain_error("当前有商品正在讲解", begin=False) is None


@pytest.mark.asyncio
async def test_requests_carry_cookie_and_referer():
    client, rec = _client({JdLiveClient.AUTHOR_INFO_PATH: {"success": True, "authorInfo": {"name": "가게", "pic": "p.png"}}})
    info = await client.verify_login()
    assert info == {"is_logged_in": True, "nickname": "가게", "avatar": "p.png"}
    headers = rec.requests[0].headers
    assert headers["cookie"] == "pt_key=abc; pt_pin=shop"
    assert headers["referer"] == "https://drlives.jd.com/"


@pytest.mark.asyncio
async def test_verify_login_when_logged_out():
    client, _ = _client({JdLiveClient.AUTHOR_INFO_PATH: {"success": False, "code": 401, "errorMsg": "未登录"}})
    info = await client.verify_login()
    assert info["is_logged_in"] is False
    assert info["nickname"] is None


@pytest.mark.asyncio
async def test_create_live_room_binds_live_id():
    client, rec = _client(
        {JdLiveClient.CREATE_LIVE_PATH: {"success": True, "data": {"liveId": 778899}}},
        live_id=None,
    )
    live_id = await client.create_live_room("신상 특가", "https://img/cover.jpg", "2026-01-01 20:00:00")
    assert live_id == "778899"
    assert client.live_id == "778899"
    body = rec.body()
    assert body["canExplain"] == 1
    assert body["type"] == 69
    assert body["title"] == "신상 특가"


@pytest.mark.asyncio
async def test_fetch_details_posts_ids_and_reads_list():
    client, rec = _client({
        JdLiveClient.UPLOAD_SKU_PATH: {
            "success": True,
            "data": {"skuList": [{"skuId": "1", "skuName": "컵"}, "garbage"]},
        }
    })
    details = await client.fetch_details(["1", "2"])
    assert details == [{"skuId": "1", "skuName": "컵"}]
    assert rec.body() == {"liveId": "live-1", "skuIds": ["1", "2"]}


@pytest.mark.asyncio
async def test_add_to_cart_reads_success_count():
    client, rec = _client({
        JdLiveClient.ADD_SKU_PATH: {"success": True, "data": {"successCount": 1, "errorMsg": "商品已下架"}}
    })
    result = await client.add_to_cart([{"skuId": "1"}, {"skuId": "2"}])
    assert result.success_count == 1
    assert result.error_message == "商品已下架"
    assert rec.body()["skuIds"] == ["1", "2"]


@pytest.mark.asyncio
async def test_add_to_cart_without_count_assumes_all():
    client, _ = _client({JdLiveClient.ADD_SKU_PATH: {"success": True}})
    result = await client.add_to_cart([{"skuId": "1"}, {"skuId": "2"}])
    assert result.success_count == 2


@pytest.mark.asyncio
async def test_explain_conflicts_map_to_state_conflict():
    client, _ = _client({
        JdLiveClient.EXPLAIN_BEGIN_PATH: {"success": False, "code": 1001, "errorMsg": "当前有商品正在讲解"},
        JdLiveClient.EXPLAIN_END_PATH: {"success": False, "code": 1002, "errorMsg": "讲解未开始"},
    })
    with pytest.raises(StateConflictError) as begin:
        await client.explain_begin("1")
    assert begin.value.kind == StateConflictError.ALREADY_EXPLAINING
    with pytest.raises(StateConflictError) as end:
        await client.explain_end("1")
    assert end.value.kind == StateConflictError.NOT_STARTED


@pytest.mark.asyncio
async def test_explain_other_failure_is_network_error_with_code():
    client, rec = _client({JdLiveClient.EXPLAIN_BEGIN_PATH: {"success": False, "code": 500, "errorMsg": "系统繁忙"}})
    with pytest.raises(NetworkError) as exc:
        await client.explain_begin("42")
    assert exc.value.code == 500
    assert rec.body() == {"liveId": "live-1", "skuId": "42"}


@pytest.mark.asyncio
async def test_http_error_status_is_network_error():
    client, _ = _client({JdLiveClient.UPLOAD_SKU_PATH: httpx.Response(500, text="oops")})
    with pytest.raises(NetworkError):
        await client.fetch_details(["1"])


@pytest.mark.asyncio
async def test_non_json_body_is_network_error():
    client, _ = _client({JdLiveClient.ADD_SKU_PATH: httpx.Response(200, text="<html>login</html>")})
    with pytest.raises(NetworkError):
        await client.add_to_cart([{"skuId": "1"}])


@pytest.mark.asyncio
async def test_live_id_required_for_product_calls():
    client, rec = _client({}, live_id=None)
    with pytest.raises(NetworkError):
        await client.fetch_details(["1"])
    assert rec.requests == []


@pytest.mark.asyncio
async def test_explain_end_with_negated_message_is_not_started():
    client, _ = _client({
        JdLiveClient.EXPLAIN_END_PATH: {"success": False, "code": 1002, "errorMsg": "该商品未在讲解中"},
    })
    with pytest.raises(StateConflictError) as exc:
        await client.explain_end("1")
    assert exc.value.kind == StateConflictError.NOT_STARTED
