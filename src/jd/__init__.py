# JD 라이브 콘솔 게이트웨이

from .client import JdLiveClient, classify_explain_error, cookies_to_header

__all__ = ["JdLiveClient", "classify_explain_error", "cookies_to_header"]
