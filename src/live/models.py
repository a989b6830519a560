"""
라이브 세션 데이터 모델.
상품 파일 / 라이브 상품 / 세션 / 멘트(AIScript) / 카운트다운 상태.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

# 상품 파일 사용 수량 센티널: 이 값이면 파일 전체 사용
FILE_USE_ALL = 999


class Phase(str, Enum):
    """카운트다운 단계"""
    PREPARE = "prepare"
    EXPLAIN = "explain"
    REST = "rest"


class ControllerState(str, Enum):
    """설명 사이클 컨트롤러 상태"""
    IDLE = "idle"
    PREPARING = "preparing"
    EXPLAINING = "explaining"
    RESTING = "resting"
    PAUSED = "paused"


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class ProductFile:
    """가져온 상품 ID 파일. 파일 내부에서는 중복 없음, 순서 유지."""
    name: str
    product_ids: list[str]
    total_count: int
    unique_count: int
    quota: int = FILE_USE_ALL  # 세션당 사용 수량
    id: str = field(default_factory=_new_id)

    def selected_ids(self) -> list[str]:
        """이번 세션에 쓸 앞쪽 ID들 (quota 센티널이면 전체)."""
        if self.quota >= FILE_USE_ALL:
            return list(self.product_ids)
        return list(self.product_ids[: max(0, self.quota)])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "productIds": list(self.product_ids),
            "totalCount": self.total_count,
            "uniqueCount": self.unique_count,
            "quota": self.quota,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProductFile":
        ids = [str(x) for x in (data.get("productIds") or data.get("product_ids") or [])]
        return cls(
            id=str(data.get("id") or _new_id()),
            name=data.get("name") or "",
            product_ids=ids,
            total_count=int(data.get("totalCount") or data.get("total_count") or len(ids)),
            unique_count=int(data.get("uniqueCount") or data.get("unique_count") or len(ids)),
            quota=int(data.get("quota", FILE_USE_ALL)),
        )


@dataclass(frozen=True)
class LiveProduct:
    """장바구니에 추가된 상품. 수집 성공 시에만 생성, 이후 변경 없음."""
    sku: str
    title: str = ""
    image_url: str = ""
    price: str = ""
    shop_name: str = ""

    @classmethod
    def from_detail(cls, detail: dict) -> "LiveProduct":
        """게이트웨이 상품 상세(dict) → LiveProduct. 키 이름은 응답 버전에 따라 다름."""
        sku = detail.get("skuId") or detail.get("sku") or detail.get("id") or ""
        return cls(
            sku=str(sku),
            title=str(detail.get("skuName") or detail.get("title") or detail.get("name") or ""),
            image_url=str(detail.get("imageUrl") or detail.get("image_url") or detail.get("img") or ""),
            price=str(detail.get("price") or detail.get("jdPrice") or ""),
            shop_name=str(detail.get("shopName") or detail.get("shop_name") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "sku": self.sku,
            "title": self.title,
            "imageUrl": self.image_url,
            "price": self.price,
            "shopName": self.shop_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LiveProduct":
        return cls(
            sku=str(data.get("sku") or ""),
            title=data.get("title") or "",
            image_url=data.get("imageUrl") or "",
            price=str(data.get("price") or ""),
            shop_name=data.get("shopName") or "",
        )


@dataclass
class AIScript:
    """상품 설명 멘트. 인덱스가 설명 순서와 평행."""
    content: str
    related_product_id: Optional[str] = None
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        return {"id": self.id, "content": self.content, "productId": self.related_product_id}

    @classmethod
    def from_dict(cls, data: dict) -> "AIScript":
        return cls(
            id=str(data.get("id") or _new_id()),
            content=data.get("content") or "",
            related_product_id=data.get("productId"),
        )


@dataclass
class LiveSession:
    """방송 1회분: 라이브룸 ID + 상품 + 멘트."""
    id: str  # 라이브룸(broadcast) ID
    title: str
    account_ref: str = ""
    scheduled_start: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)
    products: list[LiveProduct] = field(default_factory=list)
    scripts: list[AIScript] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "accountRef": self.account_ref,
            "scheduledStart": self.scheduled_start.isoformat() if self.scheduled_start else None,
            "createdAt": self.created_at.isoformat(),
            "products": [p.to_dict() for p in self.products],
            "scripts": [s.to_dict() for s in self.scripts],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LiveSession":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            account_ref=data.get("accountRef") or "",
            scheduled_start=_parse_dt(data.get("scheduledStart")),
            created_at=_parse_dt(data.get("createdAt")) or datetime.now(),
            products=[LiveProduct.from_dict(p) for p in data.get("products") or []],
            scripts=[AIScript.from_dict(s) for s in data.get("scripts") or []],
        )


@dataclass
class CountdownState:
    """카운트다운 (저장 안 함). target은 clock 기준 초 단위 시각."""
    target: Optional[float] = None
    running: bool = False
    paused: bool = False
    paused_remaining: Optional[float] = None
    phase: Phase = Phase.PREPARE

    def remaining(self, now: float) -> Optional[float]:
        if self.paused:
            return self.paused_remaining
        if self.target is None:
            return None
        return max(0.0, self.target - now)


@dataclass
class LogEntry:
    """운영자용 실행 로그 한 줄"""
    level: str  # info | warn | error | success
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=_new_id)


@dataclass
class AddCartResult:
    """장바구니 일괄 추가 결과. 일부만 성공할 수 있음."""
    success_count: int
    error_message: Optional[str] = None
