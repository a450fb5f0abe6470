from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cryptochat.auth import (
    SESSION_COOKIE_NAME,
    passwords_match,
    require_session,
    sign_session,
)
from cryptochat.chat import ChatClient, ChatError, build_chat_client
from cryptochat.config import settings
from cryptochat.context.serializer import build_context, build_system_prompt
from cryptochat.ingestion.pipeline import FetchPipeline, build_pipeline
from cryptochat.models import FetchSummary
from cryptochat.storage import DERIVED_KEY, JsonFileSnapshotStore, SnapshotStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="CryptoChat API",
    version="0.1.0",
    description="Market snapshot fetch, derived metrics and grounded chat.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

store = JsonFileSnapshotStore(settings.snapshot_dir)
pipeline = build_pipeline(store)

NO_DATA_MESSAGE = "No data yet. Please fetch data first from the Data page."


def get_store() -> SnapshotStore:
    return store


def get_pipeline() -> FetchPipeline:
    return pipeline


def get_chat_client() -> Optional[ChatClient]:
    return build_chat_client()


class LoginRequest(BaseModel):
    password: str = ""


class ChatRequest(BaseModel):
    message: str = ""


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request body.", "details": jsonable_encoder(exc.errors())})


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/sources", response_model=List[str])
async def list_sources(pipe: FetchPipeline = Depends(get_pipeline)) -> List[str]:
    return [src.key for src in pipe.sources]


@app.get("/auth", dependencies=[Depends(require_session)])
async def check_session() -> dict:
    return {"ok": True}


@app.post("/auth")
async def login(response: Response, body: LoginRequest = Body(...)) -> dict:
    secret = settings.app_password
    if not secret:
        raise HTTPException(status_code=500, detail="APP_PASSWORD not configured")
    if not body.password:
        raise HTTPException(status_code=400, detail="Missing password.")
    if not passwords_match(secret, body.password):
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = sign_session(secret, settings.session_max_age_seconds)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=settings.session_max_age_seconds,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    return {"ok": True}


@app.post("/auth/logout")
async def logout(response: Response) -> dict:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@app.post("/fetch", response_model=FetchSummary, dependencies=[Depends(require_session)])
async def trigger_fetch(pipe: FetchPipeline = Depends(get_pipeline)) -> JSONResponse:
    """Run one fetch cycle; 500 when any source failed."""
    summary = await pipe.run_once()
    logger.info(
        "Fetch cycle finished: ok=%s derived=%s failed=%s",
        summary.ok,
        summary.derived_written,
        [r.key for r in summary.results if not r.is_ok],
    )
    return JSONResponse(
        status_code=200 if summary.ok else 500,
        content=summary.model_dump(by_alias=True, mode="json", exclude_none=True),
    )


@app.get("/data", dependencies=[Depends(require_session)])
async def read_data(snapshots: SnapshotStore = Depends(get_store)) -> Dict[str, Any]:
    return snapshots.read_all()


@app.delete("/data", dependencies=[Depends(require_session)])
async def delete_data(snapshots: SnapshotStore = Depends(get_store)) -> dict:
    removed = snapshots.delete_all()
    return {"ok": True, "deleted": removed}


@app.get("/context", dependencies=[Depends(require_session)])
async def read_context(snapshots: SnapshotStore = Depends(get_store)) -> dict:
    context = build_context(snapshots.read(DERIVED_KEY), snapshots.read("global"), snapshots.read("topCoins"))
    return {"context": context}


@app.post("/chat", dependencies=[Depends(require_session)])
async def chat(
    body: ChatRequest = Body(...),
    snapshots: SnapshotStore = Depends(get_store),
    client: Optional[ChatClient] = Depends(get_chat_client),
) -> JSONResponse:
    if client is None:
        raise HTTPException(status_code=500, detail="OPENAI_API_KEY not configured.")
    message = body.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Missing or empty message.")

    derived = snapshots.read(DERIVED_KEY)
    global_raw = snapshots.read("global")
    top_coins_raw = snapshots.read("topCoins")
    has_data = (
        derived is not None
        or global_raw is not None
        or (isinstance(top_coins_raw, list) and len(top_coins_raw) > 0)
    )
    if not has_data:
        return JSONResponse(status_code=200, content={"error": NO_DATA_MESSAGE, "text": None})

    system_prompt = build_system_prompt(build_context(derived, global_raw, top_coins_raw))
    try:
        text = await client.complete(system_prompt, message)
    except ChatError as exc:
        logger.exception("LLM call failed")
        return JSONResponse(status_code=500, content={"error": "LLM call failed", "message": str(exc), "text": None})
    return JSONResponse(status_code=200, content={"text": text})
