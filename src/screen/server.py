"""
투사 화면용 로컬 HTTP 서버. OBS 브라우저 소스에 /screen/{id} 추가.

페이지는 로드 시 ready, 이후 /api/screen/{id}/state 를 폴링한다.
허브와 같은 이벤트 루프에서 실행해야 한다 (uvicorn.Server(...).serve() 를 태스크로).
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

import socketio
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from .bus import EventBus
from .hub import ScreenMirror, ScreenSyncHub

logger = logging.getLogger(__name__)

MAX_SURFACES = 8
SURFACE_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,32}")


def create_app(hub: ScreenSyncHub, bus: EventBus, max_surfaces: int = MAX_SURFACES) -> FastAPI:
    """허브/버스에 연결된 FastAPI 앱. surface마다 ScreenMirror 하나 (최대 max_surfaces개)."""
    app = FastAPI(title="JD Live Screen", docs_url=None, redoc_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
    )
    mirrors: Dict[str, ScreenMirror] = {}
    app.state.mirrors = mirrors

    def get_mirror(surface_id: str) -> ScreenMirror:
        mirror = mirrors.get(surface_id)
        if mirror is None:
            if not SURFACE_ID_PATTERN.fullmatch(surface_id):
                raise HTTPException(status_code=404, detail="invalid surface id")
            if len(mirrors) >= max_surfaces:
                logger.warning("투사 화면 수 상한 초과, 등록 거절: %s", surface_id)
                raise HTTPException(status_code=429, detail="too many surfaces")
            hub.attach_surface(surface_id)
            mirror = ScreenMirror(bus, surface_id)
            mirrors[surface_id] = mirror
        return mirror

    def mirror_payload(mirror: Optional[ScreenMirror]) -> dict:
        if mirror is None:
            return {"synced": False, "seq": 0, "state": {}}
        return {"synced": mirror.synced, "seq": mirror.last_seq, "state": mirror.state}

    @app.get("/api/screen/{surface_id}/state")
    async def get_state(surface_id: str):
        """마지막으로 미러링된 상태"""
        return JSONResponse(mirror_payload(mirrors.get(surface_id)))

    @app.post("/api/screen/{surface_id}/ready")
    async def ready(surface_id: str):
        mirror = get_mirror(surface_id)
        await mirror.ready()
        return JSONResponse(mirror_payload(mirror))

    @app.post("/api/screen/{surface_id}/next")
    async def request_next(surface_id: str):
        mirror = get_mirror(surface_id)
        await mirror.request_next()
        return JSONResponse(mirror_payload(mirror))

    @app.post("/api/screen/{surface_id}/prev")
    async def request_prev(surface_id: str):
        mirror = get_mirror(surface_id)
        await mirror.request_prev()
        return JSONResponse(mirror_payload(mirror))

    @app.post("/api/screen/{surface_id}/closed")
    async def closed(surface_id: str):
        mirror = mirrors.pop(surface_id, None)
        if mirror is not None:
            await mirror.notify_closed()
        else:
            await hub.on_surface_closed(surface_id)
        logger.info("Screen API: closed %s", surface_id)
        return JSONResponse({"ok": True})

    @app.get("/screen/{surface_id}", response_class=HTMLResponse)
    def screen_page(surface_id: str):
        """OBS 브라우저 소스용 페이지"""
        return HTMLResponse(SCREEN_HTML.replace("__SURFACE_ID__", surface_id))

    return app


def create_asgi_app(app: FastAPI, sio: socketio.AsyncServer) -> socketio.ASGIApp:
    """Socket.IO(/socket.io)와 FastAPI를 한 ASGI 앱으로"""
    return socketio.ASGIApp(sio, other_asgi_app=app)


SCREEN_HTML = """<!DOCTYPE html>
<html lang="zh">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Live Screen</title>
  <style>
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { background: transparent; color: #fff; font-family: sans-serif; height: 100vh; overflow: hidden; }
    body.obs-mode .btn-area { display: none !important; }
    #image { width: 100%; height: 70vh; object-fit: contain; }
    #script { padding: 16px; font-size: 28px; line-height: 1.5; text-shadow: 0 2px 4px rgba(0,0,0,.8); }
    #countdown { position: absolute; top: 12px; right: 16px; font-size: 32px; font-weight: bold; }
    .btn-area { position: absolute; bottom: 12px; right: 16px; display: flex; gap: 8px; }
    .btn-area button { padding: 6px 14px; font-size: 16px; }
  </style>
</head>
<body>
  <img id="image" alt="">
  <div id="countdown"></div>
  <div id="script"></div>
  <div class="btn-area">
    <button onclick="send('prev')">&lt;</button>
    <button onclick="send('next')">&gt;</button>
  </div>
  <script>
    var surfaceId = "__SURFACE_ID__";
    var base = "/api/screen/" + encodeURIComponent(surfaceId);
    if (new URLSearchParams(location.search).get("obs") === "1") document.body.classList.add("obs-mode");
    var state = {};
    function esc(s) { return String(s || "").replace(/</g, "&lt;").replace(/>/g, "&gt;"); }
    function apply(data) { if (data && data.synced) state = data.state || {}; }
    function send(kind) { fetch(base + "/" + kind, { method: "POST" }).then(function(r) { return r.json(); }).then(apply); }
    function render() {
      var img = document.getElementById("image");
      if (state.imageUrl && img.getAttribute("src") !== state.imageUrl) img.setAttribute("src", state.imageUrl);
      var s = state.script || {};
      document.getElementById("script").innerHTML = esc(s.content);
      var cd = state.countdown || {};
      var remaining = null;
      if (cd.paused) remaining = cd.pausedRemaining;
      else if (cd.running && cd.targetTs) remaining = Math.max(0, cd.targetTs - Date.now() / 1000);
      document.getElementById("countdown").textContent = remaining === null ? "" : Math.ceil(remaining) + "s";
    }
    function poll() { fetch(base + "/state").then(function(r) { return r.json(); }).then(apply).catch(function() {}); }
    send("ready");
    setInterval(poll, 1000);
    setInterval(render, 250);
    window.addEventListener("beforeunload", function() { navigator.sendBeacon(base + "/closed"); });
  </script>
</body>
</html>
"""
