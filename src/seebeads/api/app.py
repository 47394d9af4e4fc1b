"""FastAPI app factory exposing the beads graph over HTTP.

Thin plumbing over the core:
- lifespan starts the notification hub and the change watcher, and stops
  them on shutdown; a watcher that cannot start is logged and the server
  keeps serving the initial graph without live updates
- every successful rebuild publishes an ``update`` event carrying stats
- ``/api/events`` streams hub events to one subscriber per connection
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..bead_schemas import Bead, BeadFilter
from ..config import Settings
from ..events import HubEvent, NotificationHub
from ..exceptions import WatcherError
from ..graph import BeadsGraph
from ..logging_config import correlation_id_var
from ..watcher import ChangeWatcher, WatchMode

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_SSE_POLL_SECONDS = 1.0


class AgentModeRequest(BaseModel):
    enabled: bool


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_priorities(value: Optional[str]) -> List[int]:
    # Accepts both "p0" and "0"
    priorities = []
    for part in _split(value):
        part = part.lower().removeprefix("p")
        if part.isdigit():
            priorities.append(int(part))
    return priorities


def _dump(beads: List[Bead]) -> List[dict]:
    return [bead.model_dump(mode="json") for bead in beads]


def create_app(
    graph: BeadsGraph,
    hub: Optional[NotificationHub] = None,
    settings: Optional[Settings] = None,
    watch: Optional[bool] = None,
) -> FastAPI:
    """
    Build the HTTP app around an already-loaded graph.

    Args:
        graph: Loaded beads graph
        hub: Notification hub (created from settings when None)
        settings: Runtime settings (defaults when None)
        watch: Override ``settings.no_watch``

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings()
    hub = hub or NotificationHub(
        heartbeat_interval=settings.heartbeat_interval_seconds,
        subscriber_buffer=settings.subscriber_buffer,
        broadcast_buffer=settings.broadcast_buffer,
    )
    watch = (not settings.no_watch) if watch is None else watch

    def publish_update() -> None:
        hub.publish(HubEvent.update(graph.get_stats().model_dump(by_alias=True)))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        hub.start()
        watcher: Optional[ChangeWatcher] = None
        if watch:
            watcher = ChangeWatcher(
                graph.source_path,
                graph,
                mode=WatchMode.AGENT if settings.agent_mode else WatchMode.INTERACTIVE,
                on_change=publish_update,
                interactive_debounce=settings.debounce_seconds,
                agent_debounce=settings.agent_debounce_seconds,
            )
            try:
                watcher.start()
            except WatcherError as e:
                logger.warning(f"[API] Live updates disabled: {e}")
                watcher = None
        app.state.watcher = watcher
        try:
            yield
        finally:
            if watcher is not None:
                watcher.stop()
            hub.stop()

    app = FastAPI(title="seebeads", lifespan=lifespan)
    app.state.graph = graph
    app.state.hub = hub
    app.state.watcher = None
    app.state.agent_mode = settings.agent_mode

    @app.get("/api/stats")
    def stats():
        return graph.get_stats().model_dump(by_alias=True)

    @app.get("/api/beads")
    def beads(
        status: Optional[str] = None,
        type: Optional[str] = None,
        priority: Optional[str] = None,
        labels: Optional[str] = None,
        search: str = "",
        ready: Optional[str] = None,
        limit: int = Query(0),
        offset: int = Query(0),
    ):
        flt = BeadFilter(
            statuses=_split(status),
            types=_split(type),
            priorities=_parse_priorities(priority),
            labels=_split(labels),
            search=search,
            ready=ready == "true",
            limit=limit or settings.default_page_limit,
            offset=offset,
        )
        page, total = graph.query(flt)
        return {
            "beads": _dump(page),
            "total": total,
            "hasMore": max(offset, 0) + len(page) < total,
        }

    @app.get("/api/beads/{bead_id}")
    def bead(bead_id: str):
        detail = graph.get_detail(bead_id)
        if detail is None:
            return JSONResponse(status_code=404, content={"error": "Bead not found"})

        response = {"bead": detail.bead.model_dump(mode="json")}
        if detail.children:
            response["children"] = _dump(detail.children)
        if detail.blockers:
            response["blockers"] = _dump(detail.blockers)
        if detail.blocked:
            response["blocked"] = _dump(detail.blocked)
        if detail.parent is not None:
            response["parent"] = detail.parent.model_dump(mode="json")
        return response

    @app.get("/api/epics")
    def epics():
        return {"epics": [epic.to_dict() for epic in graph.get_epics()]}

    @app.get("/api/health")
    def health():
        info = graph.health()
        info["agentMode"] = app.state.agent_mode
        info["watching"] = app.state.watcher is not None
        return info

    @app.post("/api/agent-mode")
    def agent_mode(body: AgentModeRequest):
        app.state.agent_mode = body.enabled
        watcher = app.state.watcher
        if watcher is not None:
            watcher.set_mode(WatchMode.AGENT if body.enabled else WatchMode.INTERACTIVE)
        return {"agentMode": body.enabled}

    @app.get("/api/events")
    async def events(request: Request):
        sub_id, subscriber = hub.subscribe()

        async def stream():
            correlation_id_var.set(sub_id)
            try:
                initial = await run_in_threadpool(graph.get_stats)
                yield HubEvent.init(initial.model_dump(by_alias=True)).to_sse()
                while not await request.is_disconnected():
                    event = await run_in_threadpool(subscriber.get, _SSE_POLL_SECONDS)
                    if event is not None:
                        yield event.to_sse()
                    elif subscriber.closed:
                        break
            finally:
                hub.unsubscribe(sub_id)

        return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)

    return app
