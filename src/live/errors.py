"""
라이브 세션 오케스트레이터 예외 정의.

어떤 예외도 프로세스를 종료시키지 않는다. 호출 측에서 로그를 남기고 부분 기능으로 계속 진행.
"""

from typing import Optional


class LiveError(Exception):
    """오케스트레이터 공통 예외"""


class ValidationError(LiveError):
    """상품 파일 형식 오류 / 빈 파일. 해당 가져오기만 중단."""

    INVALID_FORMAT = "invalid_format"
    EMPTY = "empty"

    def __init__(self, message: str, reason: str = INVALID_FORMAT):
        super().__init__(message)
        self.reason = reason


class NetworkError(LiveError):
    """게이트웨이 호출 실패 (조회/추가/설명 시작·종료)"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class StateConflictError(LiveError):
    """서버 상태와 로컬 상태 불일치. 컨트롤러가 상태를 재동기화해서 자가 복구한다."""

    ALREADY_EXPLAINING = "already_explaining"
    NOT_STARTED = "not_started"

    def __init__(self, message: str, kind: str):
        super().__init__(message)
        self.kind = kind


class RateLimitRejection(LiveError):
    """호출 간격이 너무 짧음. 재시도 없이 사용자에게 경고만 노출."""

    def __init__(self, message: str, retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = retry_after


class PersistenceError(LiveError):
    """세션 저장/로드 실패. 메모리 상태로 계속 동작."""
