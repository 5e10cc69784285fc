"""HTTP API over the store, plus the live-update event stream.

Routes mirror the board UI's needs: task CRUD, the event timeline, status
summary, milestone ordering, and GET /api/events/stream (server-sent events,
one ``data: update`` per coalesced change).
"""

from __future__ import annotations

import json
import logging
from typing import Any

from aiohttp import web

from ghist.errors import NotFoundError, StoreError, ValidationError
from ghist.live.hub import ChangeHub
from ghist.models import TaskInput, TaskUpdate, parse_task_ref
from ghist.store import Store

logger = logging.getLogger(__name__)


def _json(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status)


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map store errors onto HTTP statuses."""
    try:
        return await handler(request)
    except NotFoundError as e:
        return _error(404, str(e))
    except ValidationError as e:
        return _error(400, str(e))
    except StoreError as e:
        logger.error("%s %s failed: %s", request.method, request.path, e)
        return _error(500, str(e))


def _cors_middleware():
    @web.middleware
    async def cors(request: web.Request, handler) -> web.StreamResponse:
        if request.method == "OPTIONS":
            resp: web.StreamResponse = web.Response()
        else:
            resp = await handler(request)
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return resp

    return cors


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("invalid JSON") from None


def _task_id(request: web.Request) -> int:
    try:
        return parse_task_ref(request.match_info["id"])
    except ValueError:
        raise ValidationError("invalid task id") from None


class GhistServer:
    """aiohttp application bound to one store and one change hub."""

    def __init__(
        self,
        store: Store,
        hub: ChangeHub,
        *,
        dev: bool = False,
        repo_url: str = "",
    ) -> None:
        self.store = store
        self.hub = hub
        self.dev = dev
        self.repo_url = repo_url

    def create_app(self) -> web.Application:
        middlewares = [error_middleware]
        if self.dev:
            middlewares.insert(0, _cors_middleware())
        app = web.Application(middlewares=middlewares)
        app.router.add_get("/api/tasks", self._list_tasks)
        app.router.add_post("/api/tasks", self._create_task)
        app.router.add_get("/api/tasks/{id}", self._get_task)
        app.router.add_patch("/api/tasks/{id}", self._update_task)
        app.router.add_delete("/api/tasks/{id}", self._delete_task)
        app.router.add_get("/api/tasks/{id}/events", self._list_task_events)
        app.router.add_get("/api/events", self._list_events)
        app.router.add_post("/api/events", self._create_event)
        app.router.add_get("/api/events/stream", self._stream)
        app.router.add_get("/api/status", self._status)
        app.router.add_get("/api/config", self._config)
        app.router.add_get("/api/settings/milestone-order", self._get_milestone_order)
        app.router.add_put("/api/settings/milestone-order", self._set_milestone_order)
        return app

    # ── Tasks ────────────────────────────────────────────────

    async def _list_tasks(self, request: web.Request) -> web.Response:
        q = request.query
        tasks = self.store.tasks.list(
            status=q.get("status", ""),
            milestone=q.get("milestone", ""),
            priority=q.get("priority", ""),
            type=q.get("type", ""),
        )
        return _json([t.to_dict() for t in tasks])

    async def _create_task(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        if not isinstance(body, dict):
            raise ValidationError("invalid JSON")
        title = body.get("title") or ""
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title is required")
        fields = {}
        for name in ("description", "status", "milestone", "priority", "type", "legacy_id"):
            value = body.get(name) or ""
            if not isinstance(value, str):
                raise ValidationError(f"{name} must be a string")
            fields[name] = value
        task = self.store.tasks.create(TaskInput(title=title, **fields))
        return _json(task.to_dict(), status=201)

    async def _get_task(self, request: web.Request) -> web.Response:
        return _json(self.store.tasks.get(_task_id(request)).to_dict())

    async def _update_task(self, request: web.Request) -> web.Response:
        id = _task_id(request)
        body = await _read_json(request)
        if not isinstance(body, dict):
            raise ValidationError("invalid JSON")
        try:
            changes = TaskUpdate.from_dict(body)
        except ValueError as e:
            raise ValidationError(str(e)) from None
        return _json(self.store.tasks.update(id, changes).to_dict())

    async def _delete_task(self, request: web.Request) -> web.Response:
        self.store.tasks.delete(_task_id(request))
        return _json({"status": "deleted"})

    async def _list_task_events(self, request: web.Request) -> web.Response:
        events = self.store.events.list_by_task(_task_id(request))
        return _json([e.to_dict() for e in events])

    # ── Events ───────────────────────────────────────────────

    async def _list_events(self, request: web.Request) -> web.Response:
        limit = 20
        raw = request.query.get("limit", "")
        if raw.isdigit() and int(raw) > 0:
            limit = int(raw)
        return _json([e.to_dict() for e in self.store.events.list_all(limit)])

    async def _create_event(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        if not isinstance(body, dict):
            raise ValidationError("invalid JSON")
        message = body.get("message") or ""
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("message is required")
        task_id = body.get("task_id")
        if task_id is not None and (isinstance(task_id, bool) or not isinstance(task_id, int)):
            raise ValidationError("task_id must be an integer")
        event = self.store.events.create(
            body.get("type") or "", message, "{}", task_id
        )
        return _json(event.to_dict(), status=201)

    async def _stream(self, request: web.Request) -> web.StreamResponse:
        """Send ``data: update`` whenever the hub signals, until the client leaves."""
        resp = web.StreamResponse(
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            }
        )
        await resp.prepare(request)
        with self.hub.subscription() as sub:
            try:
                while True:
                    await sub.wait()
                    await resp.write(b"data: update\n\n")
            except ConnectionResetError:
                logger.debug("Event stream client disconnected")
        return resp

    # ── Status / config / settings ───────────────────────────

    async def _status(self, request: web.Request) -> web.Response:
        return _json(self.store.status_summary().to_dict())

    async def _config(self, request: web.Request) -> web.Response:
        return _json({"github_repo_url": self.repo_url})

    async def _get_milestone_order(self, request: web.Request) -> web.Response:
        return _json(self.store.settings.get_milestone_order())

    async def _set_milestone_order(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        if not isinstance(body, list) or not all(isinstance(m, str) for m in body):
            raise ValidationError("invalid JSON array")
        order = self.store.settings.set_milestone_order(body)
        # settings.json is not under a watched directory
        self.hub.broadcast()
        return _json(order)
