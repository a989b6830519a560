import logging

import pytest

from src.live.config import MIN_EXPLAIN_DURATION, LiveConfig
from src.utils.logging_config import setup_logging


def test_config_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LIVE_MIN_EXPLAIN_SEC", "not-a-number")
    monkeypatch.setenv("LIVE_AUTO_ADVANCE", "0")
    monkeypatch.setenv("INGEST_BATCH_SIZE", "80")
    monkeypatch.setenv("LIVE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("INGEST_RETRY", raising=False)

    config = LiveConfig.from_env(tmp_path / "missing.env")

    assert config.min_explain_duration == MIN_EXPLAIN_DURATION
    assert config.auto_advance is False
    assert config.batch_size == 80
    assert config.retry_attempts == 1
    assert config.data_dir == tmp_path / "data"


def test_config_reads_env_file(monkeypatch, tmp_path):
    monkeypatch.delenv("LIVE_REST_SEC", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("LIVE_REST_SEC=5\n", encoding="utf-8")
    try:
        assert LiveConfig.from_env(env_file).rest_duration == 5.0
    finally:
        monkeypatch.delenv("LIVE_REST_SEC", raising=False)


@pytest.fixture
def isolated_root():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    root.handlers = []
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def test_setup_logging_routes_by_category(isolated_root, tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_CONSOLE_LEVEL", "CRITICAL")
    log_dir = setup_logging(tmp_path)
    assert log_dir == tmp_path

    logging.getLogger("src.live.explain").info("설명 시작 테스트")
    logging.getLogger("src.jd.client").error("요청 실패 테스트")

    live_log = (tmp_path / "live.log").read_text(encoding="utf-8")
    jd_log = (tmp_path / "jd.log").read_text(encoding="utf-8")
    assert "설명 시작 테스트" in live_log
    assert "설명 시작 테스트" not in jd_log
    assert "요청 실패 테스트" in jd_log
    assert "요청 실패 테스트" in (tmp_path / "error.log").read_text(encoding="utf-8")
    assert "설명 시작 테스트" in (tmp_path / "app.log").read_text(encoding="utf-8")
