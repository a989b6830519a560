"""
상품 일괄 수집: 상품 파일(순서대로) → 상세 조회(유효성) → 장바구니 추가 → 활성 세션에 추가.

- 파일마다 앞에서 quota개만 사용, 전체 목표 수량(target)을 넘지 않는다.
- 조회는 (남은 수량 + 여유 20)개, 최대 100개씩. 서버가 무효 ID를 조용히 빼므로 여유분으로 보충.
- 추가는 최대 150개씩.
- 조회/추가 실패는 RetryPolicy 만큼 시도 후 로그 남기고 다음 묶음으로. 전체 중단 없음.
- 호출은 순차 await (병렬 호출 안 함: 파일별 통계 고정 + 백엔드 제한).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .config import FETCH_CHUNK_SIZE, MAX_BATCH_SIZE, OVERFETCH_MARGIN
from .models import AddCartResult, LiveProduct, ProductFile
from .store import LiveSessionStore

logger = logging.getLogger(__name__)

FetchDetails = Callable[[List[str]], Awaitable[List[dict]]]
AddToCart = Callable[[List[dict]], Awaitable[AddCartResult]]


@dataclass
class RetryPolicy:
    """묶음 단위 재시도 정책. max_attempts=1 이면 실패 즉시 건너뜀(로그)."""
    max_attempts: int = 1
    backoff: float = 0.0  # 재시도 간 대기(초), 시도마다 2배

    def delay_for(self, attempt: int) -> float:
        return self.backoff * (2 ** (attempt - 1)) if self.backoff > 0 else 0.0


@dataclass
class FileReport:
    file_name: str
    success: int = 0
    invalid: int = 0

    def to_dict(self) -> dict:
        return {"fileName": self.file_name, "success": self.success, "invalid": self.invalid}


@dataclass
class IngestionFailure:
    """건너뛴 묶음 기록 (감사용)"""
    file_name: str
    stage: str  # "fetch" | "add"
    size: int
    error: str
    attempts: int = 1


@dataclass
class IngestionReport:
    target: int
    success: int = 0
    files: List[FileReport] = field(default_factory=list)
    failures: List[IngestionFailure] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """목표 미달 (경고일 뿐 오류 아님)"""
        return self.success < self.target

    def to_dict(self) -> dict:
        return {
            "files": [f.to_dict() for f in self.files],
            "success": self.success,
            "target": self.target,
            "failures": len(self.failures),
        }


class BatchIngestionEngine:
    """상품 파일 목록을 목표 수량까지 장바구니에 넣는다."""

    def __init__(
        self,
        fetch_details: FetchDetails,
        add_to_cart: AddToCart,
        store: LiveSessionStore,
        overfetch: int = OVERFETCH_MARGIN,
        fetch_chunk: int = FETCH_CHUNK_SIZE,
        batch_size: int = MAX_BATCH_SIZE,
        retry: Optional[RetryPolicy] = None,
    ):
        """
        Args:
            fetch_details: ID 목록 → 유효한 상품 상세 목록 (무효 ID는 빠져서 옴)
            add_to_cart: 상세 목록 → AddCartResult(success_count, error_message)
            store: 결과를 추가할 활성 세션 보유 저장소
            overfetch: 조회 여유분
            fetch_chunk: 조회 1회 최대 ID 수
            batch_size: 추가 1회 최대 상품 수
            retry: 묶음 실패 시 재시도 정책 (기본: 재시도 없음)
        """
        self.fetch_details = fetch_details
        self.add_to_cart = add_to_cart
        self.store = store
        self.overfetch = max(0, overfetch)
        self.fetch_chunk = max(1, fetch_chunk)
        self.batch_size = max(1, batch_size)
        self.retry = retry or RetryPolicy()

    async def _attempt(self, stage: str, func: Callable[[Any], Awaitable[Any]], arg: list):
        """
        retry 정책대로 호출. 성공 시 (결과, None, 시도 횟수), 끝내 실패 시 (None, 오류, 시도 횟수).
        """
        last_error: Optional[BaseException] = None
        attempts = max(1, self.retry.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await func(arg), None, attempt
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning("%s 실패 (%d/%d, %d건): %s", stage, attempt, attempts, len(arg), e)
                if attempt < attempts:
                    delay = self.retry.delay_for(attempt)
                    if delay > 0:
                        await asyncio.sleep(delay)
        return None, last_error, attempts

    async def ingest(self, files: Sequence[ProductFile], target_count: int) -> IngestionReport:
        """
        파일 순서대로 수집. 전체 성공 수는 target_count를 넘지 않는다.

        Returns:
            IngestionReport (파일별 success/invalid, 전체 success/target, 건너뛴 묶음)
        """
        report = IngestionReport(target=max(0, int(target_count)))
        self.store.add_log("info", f"상품 추가 시작: 파일 {len(files)}개, 목표 {report.target}개")

        for pf in files:
            file_report = FileReport(file_name=pf.name)
            report.files.append(file_report)
            if report.success >= report.target:
                continue
            ids = pf.selected_ids()
            cursor = 0

            while report.success < report.target and cursor < len(ids):
                remaining = report.target - report.success
                available = len(ids) - cursor
                size = min(remaining + self.overfetch, available, self.fetch_chunk)
                chunk = ids[cursor: cursor + size]
                cursor += size

                details, error, attempts = await self._attempt("상품 조회", self.fetch_details, chunk)
                if error is not None:
                    report.failures.append(IngestionFailure(pf.name, "fetch", len(chunk), str(error), attempts))
                    self.store.add_log("error", f"[{pf.name}] 상품 조회 실패, {len(chunk)}개 건너뜀: {error}")
                    continue
                details = list(details or [])
                invalid = max(0, len(chunk) - len(details))
                file_report.invalid += invalid
                if invalid:
                    logger.info("[%s] 무효 ID %d개 (조회 %d개)", pf.name, invalid, len(chunk))
                if not details:
                    continue

                await self._add_details(pf.name, details, file_report, report)

            logger.info(
                "[%s] 완료: 성공 %d, 무효 %d (누적 %d/%d)",
                pf.name, file_report.success, file_report.invalid, report.success, report.target,
            )

        if report.partial:
            logger.warning("목표 미달: %d/%d", report.success, report.target)
            self.store.add_log("warn", f"상품 추가 완료 (목표 미달): {report.success}/{report.target}")
        else:
            self.store.add_log("success", f"상품 추가 완료: {report.success}/{report.target}")
        return report

    async def _add_details(
        self,
        file_name: str,
        details: List[dict],
        file_report: FileReport,
        report: IngestionReport,
    ) -> None:
        pos = 0
        while pos < len(details) and report.success < report.target:
            remaining = report.target - report.success
            size = min(remaining, self.batch_size, len(details) - pos)
            batch = details[pos: pos + size]
            pos += size

            result, error, attempts = await self._attempt("장바구니 추가", self.add_to_cart, batch)
            if error is not None:
                report.failures.append(IngestionFailure(file_name, "add", len(batch), str(error), attempts))
                self.store.add_log("error", f"[{file_name}] 장바구니 추가 실패, {len(batch)}개 건너뜀: {error}")
                continue

            count = max(0, min(int(result.success_count), len(batch)))
            if result.error_message:
                logger.warning("[%s] 장바구니 일부 실패 (%d/%d): %s", file_name, count, len(batch), result.error_message)
            if count == 0:
                report.failures.append(IngestionFailure(
                    file_name, "add", len(batch), result.error_message or "success_count=0", attempts,
                ))
                self.store.add_log("warn", f"[{file_name}] 장바구니 추가 0건: {result.error_message or ''}")
                continue

            self.store.append_products(LiveProduct.from_detail(d) for d in batch[:count])
            file_report.success += count
            report.success += count
