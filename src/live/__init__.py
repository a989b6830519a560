"""
라이브 세션 오케스트레이터: 상품 수집 → 멘트 → 설명 사이클.
"""

from .catalog import build_product_file, load_id_file
from .config import LiveConfig
from .errors import (
    LiveError,
    NetworkError,
    PersistenceError,
    RateLimitRejection,
    StateConflictError,
    ValidationError,
)
from .explain import ExplainCycleController
from .ingestion import BatchIngestionEngine, IngestionReport, RetryPolicy
from .models import (
    FILE_USE_ALL,
    AddCartResult,
    AIScript,
    ControllerState,
    CountdownState,
    LiveProduct,
    LiveSession,
    LogEntry,
    Phase,
    ProductFile,
)
from .persistence import JsonSessionPersistence, SessionPersistence
from .store import LiveSessionStore, SessionView

__all__ = [
    "FILE_USE_ALL",
    "AIScript",
    "AddCartResult",
    "BatchIngestionEngine",
    "ControllerState",
    "CountdownState",
    "ExplainCycleController",
    "IngestionReport",
    "JsonSessionPersistence",
    "LiveConfig",
    "LiveError",
    "LiveProduct",
    "LiveSession",
    "LiveSessionStore",
    "LogEntry",
    "NetworkError",
    "PersistenceError",
    "Phase",
    "ProductFile",
    "RateLimitRejection",
    "RetryPolicy",
    "SessionPersistence",
    "SessionView",
    "StateConflictError",
    "ValidationError",
    "build_product_file",
    "load_id_file",
]
