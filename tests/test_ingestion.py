"""상품 일괄 수집 테스트"""

import pytest

from src.live.errors import NetworkError
from src.live.ingestion import BatchIngestionEngine, RetryPolicy
from src.live.models import AddCartResult, ProductFile

from tests.conftest import FakeCatalogGateway


def _file(name, ids, quota=999):
    ids = [str(i) for i in ids]
    return ProductFile(name=name, product_ids=ids, total_count=len(ids), unique_count=len(ids), quota=quota)


def _engine(gw, store, **kwargs):
    return BatchIngestionEngine(gw.fetch_details, gw.add_to_cart, store, **kwargs)


@pytest.mark.asyncio
async def test_second_file_only_contributes_remaining(empty_store):
    gw = FakeCatalogGateway(valid={"1", "2", "4", "5", "6", "7", "8", "9", "10"})
    files = [_file("f1", [1, 2, 3, 4, 5], quota=5), _file("f2", [6, 7, 8, 9, 10], quota=5)]

    report = await _engine(gw, empty_store).ingest(files, 8)

    assert report.success == 8
    assert report.target == 8
    assert not report.partial
    assert [(f.file_name, f.success, f.invalid) for f in report.files] == [("f1", 4, 1), ("f2", 4, 0)]
    assert [p.sku for p in empty_store.view().products] == ["1", "2", "4", "5", "6", "7", "8", "9"]
    # 두 번째 파일은 5개 모두 조회하지만 장바구니에는 남은 4개만 추가
    assert gw.fetch_calls == [["1", "2", "3", "4", "5"], ["6", "7", "8", "9", "10"]]
    assert gw.add_calls == [["1", "2", "4", "5"], ["6", "7", "8", "9"]]
    assert "10" not in [p.sku for p in empty_store.view().products]


@pytest.mark.asyncio
async def test_quota_limits_ids_taken_from_file(empty_store):
    gw = FakeCatalogGateway()
    report = await _engine(gw, empty_store).ingest([_file("f1", [1, 2, 3, 4, 5], quota=2)], 10)
    assert gw.fetch_calls == [["1", "2"]]
    assert report.success == 2
    assert report.partial


@pytest.mark.asyncio
async def test_fetch_chunk_is_remaining_plus_overfetch(empty_store):
    gw = FakeCatalogGateway()
    ids = list(range(1, 301))
    await _engine(gw, empty_store).ingest([_file("big", ids)], 50)
    assert len(gw.fetch_calls[0]) == 70
    assert len(gw.add_calls[0]) == 50


@pytest.mark.asyncio
async def test_fetch_chunk_capped_at_100_and_batch_at_150(empty_store):
    gw = FakeCatalogGateway()
    ids = list(range(1, 501))
    report = await _engine(gw, empty_store).ingest([_file("big", ids)], 200)
    assert all(len(c) <= 100 for c in gw.fetch_calls)
    assert all(len(b) <= 150 for b in gw.add_calls)
    assert report.success == 200
    assert len(empty_store.view().products) == 200


@pytest.mark.asyncio
async def test_never_exceeds_target_with_partial_adds(empty_store):
    gw = FakeCatalogGateway(valid={str(i) for i in range(1, 60) if i % 4})
    gw.add_results = [lambda batch: AddCartResult(success_count=max(0, len(batch) - 1), error_message="일부 실패")] * 20
    files = [_file("a", range(1, 20)), _file("b", range(20, 40)), _file("c", range(40, 60))]

    report = await _engine(gw, empty_store, overfetch=3).ingest(files, 17)

    appended = len(empty_store.view().products)
    assert appended <= 17
    assert sum(f.success for f in report.files) == appended == report.success


@pytest.mark.asyncio
async def test_add_success_count_larger_than_batch_is_clamped(empty_store):
    gw = FakeCatalogGateway()
    gw.add_results = [AddCartResult(success_count=99)]
    report = await _engine(gw, empty_store).ingest([_file("f", [1, 2, 3])], 3)
    assert report.success == 3
    assert len(empty_store.view().products) == 3


@pytest.mark.asyncio
async def test_fetch_failure_skips_chunk(empty_store):
    gw = FakeCatalogGateway()
    gw.fetch_errors = [NetworkError("timeout")]
    files = [_file("f", [1, 2, 3, 4, 5, 6])]

    report = await _engine(gw, empty_store, overfetch=0, fetch_chunk=2).ingest(files, 3)

    assert gw.fetch_calls == [["1", "2"], ["3", "4"], ["5"]]
    assert report.success == 3
    assert [p.sku for p in empty_store.view().products] == ["3", "4", "5"]
    assert len(report.failures) == 1
    assert report.failures[0].stage == "fetch"
    assert any(e.level == "error" for e in empty_store.logs)


@pytest.mark.asyncio
async def test_add_failure_continues_with_next_batch(empty_store):
    gw = FakeCatalogGateway()
    gw.add_results = [NetworkError("bag full")]
    files = [_file("f", [1, 2, 3, 4])]

    report = await _engine(gw, empty_store, overfetch=0, batch_size=2).ingest(files, 4)

    assert gw.add_calls == [["1", "2"], ["3", "4"]]
    assert report.success == 2
    assert report.partial
    assert report.failures[0].stage == "add"
    assert any(e.level == "warn" and "목표 미달" in e.message for e in empty_store.logs)


@pytest.mark.asyncio
async def test_zero_success_batch_is_recorded(empty_store):
    gw = FakeCatalogGateway()
    gw.add_results = [AddCartResult(success_count=0, error_message="商品已下架")]
    report = await _engine(gw, empty_store).ingest([_file("f", [1, 2])], 2)
    assert report.success == 0
    assert report.failures[0].error == "商品已下架"
    assert empty_store.view().products == ()


@pytest.mark.asyncio
async def test_all_invalid_chunk_moves_on(empty_store):
    gw = FakeCatalogGateway(valid={"7"})
    files = [_file("bad", [1, 2, 3]), _file("good", [7])]
    report = await _engine(gw, empty_store).ingest(files, 1)
    assert gw.add_calls == [["7"]]
    assert report.files[0].invalid == 3
    assert report.success == 1


@pytest.mark.asyncio
async def test_retry_policy_retries_failed_fetch(empty_store):
    gw = FakeCatalogGateway()
    gw.fetch_errors = [NetworkError("timeout")]
    engine = _engine(gw, empty_store, retry=RetryPolicy(max_attempts=2))
    report = await engine.ingest([_file("f", [1, 2])], 2)
    assert len(gw.fetch_calls) == 2
    assert report.success == 2
    assert report.failures == []


@pytest.mark.asyncio
async def test_files_after_target_reached_are_untouched(empty_store):
    gw = FakeCatalogGateway()
    report = await _engine(gw, empty_store).ingest([_file("a", [1, 2]), _file("b", [3, 4])], 2)
    assert gw.fetch_calls == [["1", "2"]]
    assert [(f.file_name, f.success) for f in report.files] == [("a", 2), ("b", 0)]
    assert report.to_dict()["success"] == 2


def test_retry_policy_backoff_doubles():
    policy = RetryPolicy(max_attempts=3, backoff=0.5)
    assert policy.delay_for(1) == 0.5
    assert policy.delay_for(2) == 1.0
    assert RetryPolicy().delay_for(1) == 0.0
