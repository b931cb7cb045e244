from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from seating_planner import reconciler
from seating_planner.models import Arrangement, ArrangementSummary
from seating_planner.realtime import ArrangementChannel, ArrangementEvent
from seating_planner.store import ArrangementStore, SaveResult

from .db import get_channel, get_store, init_db
from .schemas import AssignmentRequest, SaveRequest, SaveResponse, VersionedSaveRequest


logger = logging.getLogger(__name__)

app = FastAPI(title="Wedding Seating Planner API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _startup() -> None:
    init_db()


def _store() -> ArrangementStore:
    return get_store()


def _channel() -> ArrangementChannel:
    return get_channel()


def _dump(arrangement: Optional[Arrangement]) -> Optional[dict]:
    return arrangement.model_dump(mode="json", by_alias=True) if arrangement else None


def _versioned_response(result: SaveResult) -> SaveResponse:
    if result.conflict:
        raise HTTPException(
            status_code=409,
            detail={"message": "arrangement was updated by another device", "latest": _dump(result.latest)},
        )
    if not result.success:
        raise HTTPException(status_code=503, detail="arrangement store unavailable")
    return SaveResponse(success=True, arrangement=result.latest)


@app.get("/health")
def health() -> dict:
    return {"ok": True}


@app.get("/arrangements", response_model=list[ArrangementSummary])
def list_arrangements(limit: int = 10, store: ArrangementStore = Depends(_store)) -> list[ArrangementSummary]:
    return store.list_recent(max(1, min(limit, 100)))


@app.get("/arrangements/latest", response_model=Arrangement)
def latest_arrangement(store: ArrangementStore = Depends(_store)) -> Arrangement:
    arrangement = store.fetch_latest()
    if arrangement is None:
        raise HTTPException(status_code=404, detail="no arrangement saved yet")
    return arrangement


@app.put("/arrangements/latest", response_model=SaveResponse)
def save_arrangement(payload: SaveRequest, store: ArrangementStore = Depends(_store)) -> SaveResponse:
    if not store.save(payload.data, silent=True):
        raise HTTPException(status_code=503, detail="arrangement store unavailable")
    return SaveResponse(success=True, arrangement=store.fetch_latest())


@app.put("/arrangements/{arrangement_id}", response_model=SaveResponse)
def save_arrangement_version(
    arrangement_id: str, payload: VersionedSaveRequest, store: ArrangementStore = Depends(_store)
) -> SaveResponse:
    return _versioned_response(store.save_with_version(payload.data, arrangement_id, payload.expected_version))


@app.post("/arrangements/{arrangement_id}/assignments", response_model=SaveResponse)
def assign_seat(
    arrangement_id: str, payload: AssignmentRequest, store: ArrangementStore = Depends(_store)
) -> SaveResponse:
    current = store.get(arrangement_id)
    if current is None:
        raise HTTPException(status_code=404, detail="arrangement not found")
    if current.version != payload.expected_version:
        return _versioned_response(SaveResult(success=False, conflict=True, latest=store.fetch_latest()))

    data = current.data
    if data.seat(payload.seat_id) is None:
        raise HTTPException(status_code=404, detail="seat not found")
    if payload.guest_id:
        if data.guest(payload.guest_id) is None:
            raise HTTPException(status_code=404, detail="guest not found")
        seats = reconciler.assign(data.seats, payload.guest_id, payload.seat_id).seats
    else:
        seats = reconciler.unassign(data.seats, payload.seat_id)

    updated = data.model_copy(update={"seats": seats})
    return _versioned_response(store.save_with_version(updated, arrangement_id, payload.expected_version))


@app.websocket("/ws/arrangements")
async def arrangement_feed(websocket: WebSocket, channel: ArrangementChannel = Depends(_channel)) -> None:
    """Pushes {"type": "update", "arrangement_id", "version"} after every saved change."""
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[ArrangementEvent] = asyncio.Queue()
    # Saves run in the threadpool; hop back onto this socket's loop.
    unsubscribe = channel.subscribe(lambda event: loop.call_soon_threadsafe(queue.put_nowait, event))
    receiver = asyncio.ensure_future(websocket.receive_text())
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await websocket.send_json(getter.result().to_dict())
            else:
                getter.cancel()
            if receiver in done:
                try:
                    receiver.result()
                except WebSocketDisconnect:
                    break
                # Client messages carry nothing; keep listening.
                receiver = asyncio.ensure_future(websocket.receive_text())
    finally:
        unsubscribe()
        receiver.cancel()
        logger.debug("Realtime client disconnected")
