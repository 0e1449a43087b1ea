"""FastAPI app serving the remote store contract from a :class:`MemoryBackend`."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, FastAPI, Header, HTTPException, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..remote.models import (
    CreateTaskRequest,
    MoveTaskRequest,
    RejectTaskRequest,
    ReorderRequest,
    UpdateTaskRequest,
)
from .backend import MemoryBackend, RequestRejected


def create_router(backend: MemoryBackend, default_user_id: Optional[str] = None) -> APIRouter:
    router = APIRouter()

    def _user(x_user_id: Optional[str]) -> Optional[str]:
        return x_user_id or default_user_id

    @router.get("/projects/{project_id}")
    async def get_project(project_id: str, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        return backend.get_project(project_id, _user(x_user_id))

    @router.get("/projects/{project_id}/members")
    async def list_members(project_id: str, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        return backend.list_members(project_id, _user(x_user_id))

    @router.post("/projects/{project_id}/reorder")
    async def reorder(project_id: str, body: ReorderRequest, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        return backend.reorder(_user(x_user_id), project_id, body.stage_id, body.ordered_task_ids)

    @router.post("/tasks", status_code=201)
    async def create_task(body: CreateTaskRequest, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        fields = body.model_dump(exclude={"project_id", "stage_id"})
        task = backend.create_task(_user(x_user_id), body.project_id, body.stage_id, fields)
        return {"task": task}

    @router.patch("/tasks/{task_id}")
    async def update_task(task_id: str, body: UpdateTaskRequest, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(status_code=400, detail="No fields to update")
        return {"task": backend.update_task(_user(x_user_id), task_id, changes)}

    @router.post("/tasks/{task_id}/move")
    async def move_task(task_id: str, body: MoveTaskRequest, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        return {"task": backend.move_task(_user(x_user_id), task_id, body.stage_id, body.position)}

    @router.delete("/tasks/{task_id}")
    async def delete_task(task_id: str, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        backend.delete_task(_user(x_user_id), task_id)
        return {"success": True}

    @router.post("/tasks/{task_id}/approve")
    async def approve_task(task_id: str, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        return {"task": backend.approve_task(_user(x_user_id), task_id)}

    @router.delete("/tasks/{task_id}/approve")
    async def reject_task(
        task_id: str,
        body: Optional[RejectTaskRequest] = Body(None),
        x_user_id: Optional[str] = Header(None),
    ) -> dict[str, Any]:
        body = body or RejectTaskRequest()
        task = backend.reject_task(_user(x_user_id), task_id, body.returnStageId, body.reason)
        return {"task": task}

    return router


def create_app(
    backend: Optional[MemoryBackend] = None,
    *,
    default_user_id: Optional[str] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure the reference server.

    Args:
        backend: Store to serve; a fresh empty one when omitted.
        default_user_id: Acting user when a request carries no ``X-User-Id``.
        enable_cors: Whether to enable CORS.

    Returns:
        Configured FastAPI app.
    """
    backend = backend or MemoryBackend()
    app = FastAPI(
        title="Kanban Engine Dev Server",
        description="In-memory remote store for the collaborative Kanban engine",
        version="1.0.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.backend = backend
    app.state.hub = backend.hub

    @app.exception_handler(RequestRejected)
    async def _rejected(request: Request, exc: RequestRejected) -> JSONResponse:
        logger.debug("{} {} -> {} {}", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def _invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
        return JSONResponse(status_code=422, content={"error": f"{field}: {first.get('msg', 'invalid')}"})

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "name": "Kanban Engine Dev Server",
            "version": "1.0.0",
            "status": "running",
            "realtime_clients": backend.hub.client_count,
        }

    @app.websocket("/realtime")
    async def realtime(websocket: WebSocket) -> None:
        await backend.hub.handle_connection(websocket)

    app.include_router(create_router(backend, default_user_id))
    return app
