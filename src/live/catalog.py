"""
상품 ID 목록 → ProductFile.

엑셀 파싱은 외부 담당. 여기서는 이미 뽑힌 ID 목록, 또는 텍스트/CSV(첫 열) 파일만 다룬다.
"""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Iterable, Union

from .errors import ValidationError
from .models import FILE_USE_ALL, ProductFile

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".csv")
_SKU_PATTERN = re.compile(r"^\d+$")


def build_product_file(name: str, raw_ids: Iterable, quota: int = FILE_USE_ALL) -> ProductFile:
    """
    ID 목록으로 ProductFile 생성. 순서 유지 + 파일 내 중복 제거.

    Raises:
        ValidationError: 유효한 ID가 하나도 없을 때 (reason=empty)
    """
    total = 0
    seen = set()
    ordered: list[str] = []
    for raw in raw_ids:
        sku = str(raw if raw is not None else "").strip()
        if sku.endswith(".0"):  # 숫자 셀을 float로 읽은 경우
            sku = sku[:-2]
        if not sku:
            continue
        total += 1
        if sku in seen:
            continue
        seen.add(sku)
        ordered.append(sku)
    if not ordered:
        raise ValidationError(f"상품 ID가 없습니다: {name}", reason=ValidationError.EMPTY)
    if total != len(ordered):
        logger.info("파일 %s: 전체 %d개 중 중복 %d개 제거", name, total, total - len(ordered))
    return ProductFile(
        name=name,
        product_ids=ordered,
        total_count=total,
        unique_count=len(ordered),
        quota=quota,
    )


def load_id_file(path: Union[Path, str], quota: int = FILE_USE_ALL) -> ProductFile:
    """
    텍스트/CSV 파일의 첫 열에서 상품 ID 읽기. 숫자가 아닌 셀(헤더 등)은 건너뜀.

    Raises:
        ValidationError: 지원하지 않는 형식(invalid_format), 읽기 실패, ID 없음(empty)
    """
    p = Path(path)
    if p.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise ValidationError(
            f"지원하지 않는 파일 형식: {p.suffix or '(없음)'}",
            reason=ValidationError.INVALID_FORMAT,
        )
    try:
        text = p.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"파일 읽기 실패 {p}: {e}", reason=ValidationError.INVALID_FORMAT) from e

    ids = []
    for row in csv.reader(text.splitlines()):
        if not row:
            continue
        cell = row[0].strip()
        if cell.endswith(".0"):
            cell = cell[:-2]
        if _SKU_PATTERN.match(cell):
            ids.append(cell)
    return build_product_file(p.stem, ids, quota=quota)
