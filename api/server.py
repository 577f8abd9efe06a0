"""FastAPI server exposing queue-runner controls for the dashboard UI."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from outreach_runner.controller import build_controller
from outreach_runner.errors import AuthExpiredError, RunnerError
from utils.log_utils import tprint

controller = build_controller()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if await controller.boot():
        tprint("[API] Resumed persisted run on startup")
    yield
    await controller.close()


app = FastAPI(title="Outreach Runner API", version="0.1.0", lifespan=lifespan)

# Allow local dev origins (dashboard, extension popup, etc.)
_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class StopRequest(BaseModel):
    reason: Optional[str] = None


class InboxSyncRequest(BaseModel):
    count: int = Field(default=50, ge=1, le=100)
    include_messages: bool = False


class ConversationSyncRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    count: int = Field(default=50, ge=1, le=100)


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1)


@app.post("/queue/start")
async def start_queue():
    started = await controller.start()
    return {"status": "ok" if started else "already_running", **controller.status()}


@app.post("/queue/pause")
async def pause_queue():
    controller.pause()
    return {"status": "ok", **controller.status()}


@app.post("/queue/resume")
async def resume_queue():
    resumed = await controller.resume()
    return {"status": "ok" if resumed else "not_paused", **controller.status()}


@app.post("/queue/stop")
async def stop_queue(req: Optional[StopRequest] = None):
    if req is not None and req.reason:
        controller.stop(req.reason)
    else:
        controller.stop()
    return {"status": "ok", **controller.status()}


@app.get("/queue/status")
async def queue_status():
    return controller.status()


@app.get("/queue/events")
async def queue_events(since: int = 0):
    return {"items": controller.notifier.recent(since)}


async def _platform_call(call):
    try:
        return await call
    except AuthExpiredError as exc:
        raise HTTPException(status_code=401, detail=str(exc))
    except RunnerError as exc:
        # Surface platform failures as 502 for the UI.
        raise HTTPException(status_code=502, detail=str(exc))


@app.post("/inbox/sync")
async def sync_inbox(req: InboxSyncRequest):
    report = await _platform_call(controller.sync_inbox(req.count, req.include_messages))
    return report.to_dict()


@app.post("/inbox/{backend_conversation_id}/sync-messages")
async def sync_conversation_messages(backend_conversation_id: str, req: ConversationSyncRequest):
    report = await _platform_call(
        controller.sync_conversation(backend_conversation_id, req.conversation_id, req.count)
    )
    return report.to_dict()


@app.post("/inbox/conversations/{conversation_id}/messages")
async def send_message(conversation_id: str, req: SendMessageRequest):
    sent = await _platform_call(controller.send_message(conversation_id, req.content))
    return sent.to_dict()


@app.post("/inbox/conversations/{conversation_id}/read")
async def mark_conversation_read(conversation_id: str):
    await _platform_call(controller.mark_as_read(conversation_id))
    return {"success": True, "conversation_id": conversation_id}


@app.get("/", response_class=HTMLResponse)
def root():
    return "<html><body><h1>Outreach Runner API</h1><p>Status: OK</p></body></html>"


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.server:app", host="0.0.0.0", port=8765, reload=True)
