"""
JD 라이브 세션 실행 예제: 상품 파일 → 라이브룸 생성 → 장바구니 추가 → 멘트 생성 → 설명 자동 진행

.env에 JD_COOKIE (drlives.jd.com 로그인 쿠키), AI_API_KEY(선택, SiliconFlow) 설정 후 실행.
실행: python examples/live_session_example.py ids1.csv ids2.txt  (프로젝트 루트에서)

- 상품 파일은 첫 열에 SKU ID가 있는 텍스트/CSV. 파일별 사용 수량은 LIVE_FILE_QUOTA (기본 전체).
- 목표 수량: LIVE_TARGET_COUNT (기본 10), 개시 시간: LIVE_START_IN_MIN 분 후 (기본 5, 최소 3).
- 라이브룸 제목: LIVE_TITLE, 비어 있으면 AI로 생성 (키 없으면 기본 제목).
- 투사 화면: OBS 브라우저 소스에 http://127.0.0.1:8765/screen/main 추가. 포트는 OVERLAY_PORT.
- Ctrl+C 로 종료. 종료 시 세션 저장.
"""

import asyncio
import logging
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv

from src.ai import ScriptGenerator
from src.jd import JdLiveClient
from src.live import (
    BatchIngestionEngine,
    ExplainCycleController,
    JsonSessionPersistence,
    LiveConfig,
    LiveSessionStore,
    RetryPolicy,
    ValidationError,
    load_id_file,
)
from src.screen import OverlayWindowManager, ScreenSyncHub, SocketIOEventBus
from src.screen.server import create_app, create_asgi_app
from src.utils import setup_logging

load_dotenv(Path(__file__).resolve().parent.parent / ".env")
setup_logging()
logger = logging.getLogger(__name__)


async def main():
    config = LiveConfig.from_env()
    if not config.jd_cookie:
        print("❌ .env에 JD_COOKIE를 설정해주세요. (drlives.jd.com 로그인 후 쿠키 복사)")
        return
    paths = sys.argv[1:]
    if not paths:
        print("사용법: python examples/live_session_example.py <상품ID파일> [...]")
        return

    client = JdLiveClient(config.jd_cookie)
    login = await client.verify_login()
    if not login["is_logged_in"]:
        print("❌ JD 로그인 상태가 아닙니다. 쿠키를 다시 복사해주세요.")
        return
    print(f"JD 로그인: {login['nickname']}")

    store = LiveSessionStore(
        JsonSessionPersistence(config.data_dir),
        max_sessions=config.max_sessions,
        max_logs=config.max_logs,
    )
    store.load()

    quota = int(os.getenv("LIVE_FILE_QUOTA", str(config.default_quota)))
    files = []
    for p in paths:
        try:
            files.append(store.add_product_file(load_id_file(p, quota=quota)))
        except ValidationError as e:
            print(f"⚠️ 파일 건너뜀 {p}: {e}")
    if not files:
        return

    start_at = datetime.now() + timedelta(minutes=int(os.getenv("LIVE_START_IN_MIN", "5")))
    generator = ScriptGenerator(
        api_key=config.ai_api_key,
        model=config.ai_model,
        base_url=config.ai_base_url,
        throttle_sec=config.ai_throttle,
    )
    title = (os.getenv("LIVE_TITLE") or "").strip() or await generator.generate_title()
    live_id = await client.create_live_room(
        title,
        start_time=start_at.strftime("%Y-%m-%d %H:%M:%S"),
        end_time=(start_at + timedelta(hours=4)).strftime("%Y-%m-%d %H:%M:%S"),
    )
    store.create_session(live_id, title, account_ref=login["nickname"] or "", scheduled_start=start_at)

    engine = BatchIngestionEngine(
        client.fetch_details,
        client.add_to_cart,
        store,
        overfetch=config.overfetch,
        fetch_chunk=config.fetch_chunk,
        batch_size=config.batch_size,
        retry=RetryPolicy(max_attempts=config.retry_attempts),
    )
    target = int(os.getenv("LIVE_TARGET_COUNT", "10"))
    report = await engine.ingest(files, target)
    for f in report.files:
        print(f"  {f.file_name}: 성공 {f.success}, 무효 {f.invalid}")
    print(f"장바구니 추가: {report.success}/{report.target}" + (" (목표 미달)" if report.partial else ""))

    store.set_scripts(await generator.generate_scripts(store.view().products))
    store.checkpoint()

    controller = ExplainCycleController(
        client,
        store,
        min_explain_duration=config.min_explain_duration,
        min_call_spacing=config.min_call_spacing,
        explain_duration=config.explain_duration,
        rest_duration=config.rest_duration,
        settle_delay=config.settle_delay,
        auto_advance=config.auto_advance,
    )
    bus = SocketIOEventBus()
    base_url = f"http://127.0.0.1:{config.overlay_port}"
    hub = ScreenSyncHub(store, controller, bus, OverlayWindowManager(base_url))

    import uvicorn
    asgi_app = create_asgi_app(create_app(hub, bus), bus.server)
    server = uvicorn.Server(
        uvicorn.Config(asgi_app, host="127.0.0.1", port=config.overlay_port, log_level="warning")
    )
    server_task = asyncio.create_task(server.serve())
    url = await hub.open_surface("main")
    print(f"투사 화면: {url} (OBS 브라우저 소스에 추가)")

    await controller.prepare(start_at)
    print(f"개시 대기: {start_at:%H:%M:%S} 에 첫 상품 설명 시작")
    try:
        while True:
            await asyncio.sleep(5)
            if store.checkpoint():
                logger.debug("세션 저장")
    except asyncio.CancelledError:
        pass
    finally:
        await controller.stop()
        if controller.explaining_product_id:
            try:
                await controller.end()
            except Exception as e:
                logger.warning("종료 시 설명 종료 실패: %s", e)
        store.checkpoint()
        server.should_exit = True
        await server_task


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
