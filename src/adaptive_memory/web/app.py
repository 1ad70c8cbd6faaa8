"""FastAPI application exposing the engine to hosts that deliver events over HTTP."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from adaptive_memory.config import load_config
from adaptive_memory.hook import AdaptiveMemory, HookEvent

LOGGER = logging.getLogger(__name__)

CONFIG_ENV = "ADAPTIVE_MEMORY_CONFIG"

app = FastAPI(title="Adaptive Memory", version="0.3.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    query: str
    max_results: int = 10
    min_score: float = Field(default=0.5, ge=0.0, le=1.0)


class SearchHit(BaseModel):
    path: str
    score: float
    snippet: str


class EventPayload(BaseModel):
    type: str
    action: str | None = None
    sessionKey: str | None = None
    session_id: str | None = None
    message: str | None = None


class FirstMessagePayload(BaseModel):
    session_id: str
    message: str


@lru_cache(maxsize=1)
def get_memory() -> AdaptiveMemory:
    config_path = os.environ.get(CONFIG_ENV)
    return AdaptiveMemory(load_config(Path(config_path) if config_path else None))


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
async def search_memory(
    payload: SearchPayload, memory: AdaptiveMemory = Depends(get_memory)
) -> dict[str, List[SearchHit]]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    max_results = max(1, min(payload.max_results, 50))
    results = memory.searcher.search(
        query,
        max_results=max_results,
        min_score=payload.min_score,
    )
    hits = [SearchHit(path=str(r.path), score=r.score, snippet=r.snippet) for r in results]
    return {"results": hits}


@app.post("/first-message")
async def first_message(
    payload: FirstMessagePayload, memory: AdaptiveMemory = Depends(get_memory)
) -> Dict[str, Any]:
    return memory.handle_first_message(payload.session_id, payload.message).to_dict()


@app.post("/events")
async def dispatch_event(
    payload: EventPayload, memory: AdaptiveMemory = Depends(get_memory)
) -> Dict[str, Any]:
    event = HookEvent.from_dict(payload.model_dump(exclude_none=True))
    outcome = memory.handle_event(event)
    if outcome is None:
        return {"status": "ignored"}

    response: Dict[str, Any] = {"status": "ok", "kind": outcome.kind.value}
    if outcome.report is not None:
        response["state"] = outcome.report.state.value
        response["failed"] = outcome.report.failed
    if outcome.decision is not None:
        response["decision"] = outcome.decision.value
    if outcome.result is not None:
        response["result"] = outcome.result.to_dict()
    return response


@app.get("/maintenance")
async def maintenance_status(memory: AdaptiveMemory = Depends(get_memory)) -> Dict[str, Any]:
    state = memory.store.load()
    return {
        "state": state.lifecycle_state().value,
        "maintenance": state.to_dict(),
        "signals": memory.compactor.signals().to_dict(),
    }
