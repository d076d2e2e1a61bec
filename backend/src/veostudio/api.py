"""
FastAPI service for the Veo Studio agent.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from opentelemetry.instrumentation.asyncio import AsyncioInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from veostudio.agent.state import resolve_context_name
from veostudio.config import Config, configure_logging
from veostudio.errors import ActionError
from veostudio.models import utc_now
from veostudio.provider_router import error_response, get_runtime, router as provider_router
from veostudio.runtime import StudioRuntime


logger = logging.getLogger(__name__)

DEFAULT_PROJECT_ID = "default"
DEFAULT_USER_ID = "default-user"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    status: str


class ChatRequest(CamelModel):
    message: str = ""
    project_id: str = DEFAULT_PROJECT_ID
    user_id: str = DEFAULT_USER_ID


class ActionRequest(CamelModel):
    project_id: str = DEFAULT_PROJECT_ID
    user_id: str = DEFAULT_USER_ID
    action_name: Optional[str] = None
    params: dict[str, Any] = Field(default_factory=dict)


class MemoryPatchRequest(CamelModel):
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    context_type: Optional[str] = None
    updates: dict[str, Any] = Field(default_factory=dict)


class WorkflowPayload(BaseModel):
    name: str = ""
    steps: Optional[list[dict[str, Any]]] = None


class WorkflowRequest(CamelModel):
    project_id: str = DEFAULT_PROJECT_ID
    user_id: str = DEFAULT_USER_ID
    workflow: Optional[WorkflowPayload] = None


class TemplateRequest(CamelModel):
    project_id: str = DEFAULT_PROJECT_ID
    user_id: str = DEFAULT_USER_ID
    template: Optional[WorkflowPayload] = None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": message})


def create_app(runtime: Optional[StudioRuntime] = None) -> FastAPI:
    """Build the API. Without a runtime one is created from the environment on startup."""
    config = runtime.config if runtime is not None else Config.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.log_level)
        active = runtime or StudioRuntime(config)
        active.start()
        app.state.runtime = active

        # Instrument Asyncio
        AsyncioInstrumentor().instrument()

        try:
            yield
        finally:
            active.close()

    app = FastAPI(title="Veo Studio API", version="0.1.0", lifespan=lifespan)
    FastAPIInstrumentor.instrument_app(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else "Invalid request"
        return _bad_request(message)

    app.include_router(provider_router)
    app.mount(
        config.image_url_prefix,
        StaticFiles(directory=str(config.image_dir), check_dir=False),
        name="generated-images",
    )
    app.mount(
        config.video_url_prefix,
        StaticFiles(directory=str(config.video_dir), check_dir=False),
        name="generated-videos",
    )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    # ========================================================================
    # Chat
    # ========================================================================

    @app.post("/api/agent/chat")
    async def agent_chat(request: ChatRequest, runtime: StudioRuntime = Depends(get_runtime)):
        if not request.message.strip():
            return _bad_request("Message is required")
        try:
            from opentelemetry import context
            ctx = context.get_current()

            def _run_with_ctx():
                token = context.attach(ctx)
                try:
                    return runtime.agent_service.run_turn(request.user_id, request.project_id, request.message)
                finally:
                    context.detach(token)

            turn = await asyncio.to_thread(_run_with_ctx)
        except Exception as exc:
            logger.exception("[agent_chat] Chat turn failed for %s", request.project_id)
            return error_response(exc)
        return turn.to_wire()

    # ========================================================================
    # Actions
    # ========================================================================

    @app.get("/api/agent/action")
    def list_actions(runtime: StudioRuntime = Depends(get_runtime)):
        actions = runtime.registry.list_actions()
        return {"success": True, "actions": actions, "count": len(actions)}

    @app.post("/api/agent/action")
    def run_action(request: ActionRequest, runtime: StudioRuntime = Depends(get_runtime)):
        if not request.action_name:
            return _bad_request("actionName is required")
        if runtime.registry.get(request.action_name) is None:
            return JSONResponse(
                status_code=404,
                content={
                    "success": False,
                    "error": "UNKNOWN_ACTION",
                    "message": f"Unknown action '{request.action_name}'.",
                },
            )
        result = runtime.dispatch(request.user_id, request.project_id, request.action_name, request.params)
        return {
            "success": bool(result.get("success")),
            "result": result,
            "actionName": request.action_name,
            "projectId": request.project_id,
            "userId": request.user_id,
        }

    # ========================================================================
    # Memory
    # ========================================================================

    @app.get("/api/agent/memory")
    def get_memory(
        project_id: str = Query(DEFAULT_PROJECT_ID, alias="projectId"),
        user_id: str = Query(DEFAULT_USER_ID, alias="userId"),
        context: Optional[str] = Query(None),
        runtime: StudioRuntime = Depends(get_runtime),
    ):
        scope = runtime.state.scope(user_id, project_id)
        try:
            if not context or context == "all":
                contexts = scope.snapshots()
            else:
                name = resolve_context_name(context)
                contexts = {"project": scope.snapshot("project")}
                contexts["mediaLibrary" if name == "media" else name] = scope.snapshot(name)
        except ActionError as exc:
            return error_response(exc)
        return {
            "success": True,
            "projectId": project_id,
            "userId": user_id,
            "contexts": contexts,
            "timestamp": utc_now().isoformat(),
        }

    @app.patch("/api/agent/memory")
    def patch_memory(request: MemoryPatchRequest, runtime: StudioRuntime = Depends(get_runtime)):
        if not request.project_id or not request.user_id:
            return _bad_request("projectId and userId are required")
        scope = runtime.state.scope(request.user_id, request.project_id)
        try:
            name = resolve_context_name(request.context_type)
            memory = scope.patch(name, request.updates)
        except ActionError as exc:
            return error_response(exc)
        return {
            "success": True,
            "contextType": request.context_type or "project",
            "memory": memory,
            "message": "Memory updated successfully",
        }

    @app.delete("/api/agent/memory")
    def delete_memory(
        project_id: str = Query(DEFAULT_PROJECT_ID, alias="projectId"),
        user_id: str = Query(DEFAULT_USER_ID, alias="userId"),
        context: Optional[str] = Query(None),
        runtime: StudioRuntime = Depends(get_runtime),
    ):
        scope = runtime.state.scope(user_id, project_id)
        if context:
            if context not in ("analytics", "media"):
                return _bad_request("Invalid context type for deletion")
            scope.reset(context)
            return {"success": True, "message": f"{context} context cleared"}

        try:
            runtime.registry.execute("clear-project", {"confirm": True}, runtime.action_context(user_id, project_id))
        except Exception as exc:
            return error_response(exc)
        runtime.agent_service.forget(user_id, project_id)
        return {"success": True, "message": "All project data cleared"}

    # ========================================================================
    # Workflows
    # ========================================================================

    @app.post("/api/agent/workflow")
    def start_workflow(request: WorkflowRequest, runtime: StudioRuntime = Depends(get_runtime)):
        workflow = request.workflow
        if workflow is None or not workflow.name or workflow.steps is None:
            return _bad_request("workflow with name and steps is required")
        try:
            result = runtime.registry.execute(
                "start-workflow",
                {"name": workflow.name, "steps": workflow.steps},
                runtime.action_context(request.user_id, request.project_id),
            )
        except Exception as exc:
            return error_response(exc)
        result.update(projectId=request.project_id, userId=request.user_id)
        return result

    @app.get("/api/agent/workflow")
    def get_workflows(
        project_id: str = Query(DEFAULT_PROJECT_ID, alias="projectId"),
        user_id: str = Query(DEFAULT_USER_ID, alias="userId"),
        runtime: StudioRuntime = Depends(get_runtime),
    ):
        scope = runtime.state.scope(user_id, project_id)
        project = scope.snapshot("project")["memory"]
        preferences = scope.snapshot("preferences")["memory"]
        return {
            "success": True,
            "activeWorkflows": project["activeWorkflows"],
            "templates": preferences["workflowTemplates"],
            "projectId": project_id,
            "userId": user_id,
        }

    @app.put("/api/agent/workflow")
    def save_template(request: TemplateRequest, runtime: StudioRuntime = Depends(get_runtime)):
        template = request.template
        if template is None or not template.name or template.steps is None:
            return _bad_request("template with name and steps is required")
        try:
            result = runtime.registry.execute(
                "save-workflow-template",
                {"name": template.name, "steps": template.steps},
                runtime.action_context(request.user_id, request.project_id),
            )
        except Exception as exc:
            return error_response(exc)
        result["message"] = f'Template "{template.name}" saved successfully'
        return result

    return app


app = create_app()
