"""
세션/상품 파일 저장소. data/live_sessions.json, data/product_files.json.
실패하면 PersistenceError. 호출 측(LiveSessionStore)은 로그만 남기고 메모리로 계속 동작.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from .errors import PersistenceError
from .models import LiveSession, ProductFile

logger = logging.getLogger(__name__)

SESSIONS_FILE = "live_sessions.json"
PRODUCT_FILES_FILE = "product_files.json"


class SessionPersistence(ABC):
    """세션 저장소 인터페이스"""

    @abstractmethod
    def load(self) -> List[LiveSession]:
        pass

    @abstractmethod
    def save(self, sessions: List[LiveSession]) -> None:
        pass

    def load_product_files(self) -> List[ProductFile]:
        return []

    def save_product_files(self, files: List[ProductFile]) -> None:
        return None


class JsonSessionPersistence(SessionPersistence):
    """JSON 파일 저장소. 파일이 없으면 빈 목록."""

    def __init__(self, data_dir: Union[Path, str]):
        self.data_dir = Path(data_dir)
        self.sessions_path = self.data_dir / SESSIONS_FILE
        self.product_files_path = self.data_dir / PRODUCT_FILES_FILE

    def _read(self, path: Path) -> list:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"읽기 실패 {path}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"형식 오류 {path}: 배열이 아님")
        return data

    def _write(self, path: Path, items: list) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(items, ensure_ascii=False, indent=1), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise PersistenceError(f"쓰기 실패 {path}: {e}") from e
        logger.info("저장 완료: %s (%d건)", path, len(items))

    def load(self) -> List[LiveSession]:
        out: List[LiveSession] = []
        for raw in self._read(self.sessions_path):
            try:
                out.append(LiveSession.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("세션 항목 무시 (형식 오류): %s", e)
        return out

    def save(self, sessions: List[LiveSession]) -> None:
        self._write(self.sessions_path, [s.to_dict() for s in sessions])

    def load_product_files(self) -> List[ProductFile]:
        out: List[ProductFile] = []
        for raw in self._read(self.product_files_path):
            try:
                out.append(ProductFile.from_dict(raw))
            except (TypeError, ValueError) as e:
                logger.warning("상품 파일 항목 무시 (형식 오류): %s", e)
        return out

    def save_product_files(self, files: List[ProductFile]) -> None:
        self._write(self.product_files_path, [f.to_dict() for f in files])
