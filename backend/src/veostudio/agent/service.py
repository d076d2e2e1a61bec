"""
Chat service for the Veo Studio agent.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Optional

from agents import Agent, FunctionTool, ModelSettings, RunConfig, Runner, SQLiteSession
from agents.extensions.models.litellm_model import LitellmModel
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from veostudio.agent.actions import ActionContext, ActionRegistry, ActionSpec
from veostudio.agent.prompts import build_instructions
from veostudio.agent.state import AgentState, project_key
from veostudio.config import Config
from veostudio.errors import ValidationFailure
from veostudio.gateway import MediaGateway


logger = logging.getLogger(__name__)

DEFAULT_VIDEO_MESSAGE = "Video generation started. This usually takes a few minutes."


def _is_retryable_rate_limit_error(exc: BaseException) -> bool:
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc).lower()
    return "ratelimiterror" in message and "429" in message


@dataclass
class ChatTurn:
    message: str
    actions: list[dict[str, Any]] = field(default_factory=list)
    images: list[dict[str, Any]] = field(default_factory=list)
    videos: list[dict[str, Any]] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "actions": self.actions,
            "metadata": {
                "hasVideo": bool(self.videos),
                "hasImage": bool(self.images),
                "videos": self.videos,
                "images": self.images,
            },
        }


def build_chat_turn(output: Optional[str], actions: list[dict[str, Any]]) -> ChatTurn:
    """
    Turn the agent output plus the recorded action results into a chat reply.

    Media results win over the agent's free text: the UI renders them, so the
    message only needs to announce them.
    """
    turn = ChatTurn(message="", actions=actions)
    for entry in actions:
        result = entry.get("result") or {}
        if not result.get("success"):
            continue
        if entry.get("name") == "generate-imagen-image":
            for image in result.get("images") or []:
                turn.images.append({"imageId": image.get("id"), "url": image.get("url")})
            turn.message = f"Generated {result.get('count') or 1} image(s) successfully!"
        elif entry.get("name") == "generate-veo-video":
            turn.videos.append(
                {
                    "operationName": result.get("operationName"),
                    "videoId": result.get("videoId"),
                    "message": result.get("message"),
                }
            )
            turn.message = DEFAULT_VIDEO_MESSAGE

    if not turn.message:
        text = (output or "").strip()
        if text and not text.startswith("{"):
            turn.message = text

    if not turn.message:
        if turn.videos:
            turn.message = "I've started generating your video. This usually takes a few minutes."
        elif turn.images:
            turn.message = "I've generated your image."
        else:
            turn.message = "I've processed your request."
    return turn


class StudioAgentService:
    def __init__(
        self,
        config: Config,
        state: AgentState,
        registry: ActionRegistry,
        gateway: MediaGateway,
    ):
        self.config = config
        self.state = state
        self.registry = registry
        self.gateway = gateway
        self.model_name = config.agent_model
        self._agents: dict[str, Agent] = {}
        self._sessions: dict[str, SQLiteSession] = {}
        self._turn_actions: dict[str, list[dict[str, Any]]] = {}
        self._agents_lock = Lock()
        self._run_locks: dict[str, Lock] = {}
        self._run_locks_guard = Lock()

    def action_context(self, user_id: str, project_id: str) -> ActionContext:
        return ActionContext(user_id=user_id, project_id=project_id, state=self.state, gateway=self.gateway)

    def _record_action(self, key: str, name: str, params: Any, result: dict[str, Any]) -> None:
        self._turn_actions.setdefault(key, []).append({"name": name, "params": params, "result": result})

    def _build_tool(self, spec: ActionSpec, context: ActionContext, key: str) -> FunctionTool:
        async def _invoke(_tool_context, args_json: str) -> str:
            try:
                params = json.loads(args_json) if args_json else {}
            except json.JSONDecodeError:
                params = {}
                result = ValidationFailure(f"Arguments for {spec.name} are not valid JSON.").to_result()
            else:
                result = await asyncio.to_thread(self.registry.dispatch, spec.name, params, context)
            logger.info("[%s] success=%s", spec.name, result.get("success"))
            self._record_action(key, spec.name, params, result)
            return json.dumps(result, default=str)

        return FunctionTool(
            name=spec.name,
            description=spec.description,
            params_json_schema=spec.schema.model_json_schema(by_alias=True),
            on_invoke_tool=_invoke,
            strict_json_schema=False,
        )

    def _get_agent(self, user_id: str, project_id: str) -> Agent:
        key = project_key(user_id, project_id)
        with self._agents_lock:
            agent = self._agents.get(key)
            if agent is not None:
                return agent

            scope = self.state.scope(user_id, project_id)

            def _dynamic_instructions(run_context, agent) -> str:
                return build_instructions(scope.render())

            context = self.action_context(user_id, project_id)
            tools = [self._build_tool(spec, context, key) for spec in self.registry.specs.values()]
            agent = Agent(
                name="VeoStudioAgent",
                instructions=_dynamic_instructions,
                model=LitellmModel(model=self.model_name),
                model_settings=ModelSettings(),
                tools=tools,
            )
            self._agents[key] = agent
            return agent

    def _get_session(self, key: str) -> SQLiteSession:
        # In-memory database; history does not survive a restart.
        with self._agents_lock:
            session = self._sessions.get(key)
            if session is None:
                session = SQLiteSession(key)
                self._sessions[key] = session
            return session

    def _get_run_lock(self, key: str) -> Lock:
        with self._run_locks_guard:
            lock = self._run_locks.get(key)
            if lock is None:
                lock = Lock()
                self._run_locks[key] = lock
            return lock

    def run_turn(self, user_id: str, project_id: str, message: str) -> ChatTurn:
        key = project_key(user_id, project_id)
        run_config = RunConfig(workflow_name="Veo Studio chat", group_id=key)

        with self._get_run_lock(key):
            session_count = self.state.projects.begin_session(user_id, project_id)
            logger.info("[run_turn] project=%s session=%d", key, session_count)
            agent = self._get_agent(user_id, project_id)
            session = self._get_session(key)
            self._turn_actions[key] = []
            try:
                result = None
                for attempt in Retrying(
                    retry=retry_if_exception(_is_retryable_rate_limit_error),
                    stop=stop_after_attempt(4),  # Initial attempt + up to 3 retries
                    wait=wait_exponential(multiplier=1, min=1, max=8),
                    reraise=True,
                ):
                    with attempt:
                        result = Runner.run_sync(
                            agent,
                            input=message,
                            session=session,
                            max_turns=self.config.agent_max_turns,
                            run_config=run_config,
                        )
            finally:
                actions = self._turn_actions.pop(key, [])

        output = result.final_output if result is not None else None
        if output is not None and not isinstance(output, str):
            output = str(output)
        return build_chat_turn(output, actions)

    def forget(self, user_id: str, project_id: str) -> None:
        """Drop the cached agent, chat history and run lock of one project."""
        key = project_key(user_id, project_id)
        with self._get_run_lock(key):
            with self._agents_lock:
                self._agents.pop(key, None)
                session = self._sessions.pop(key, None)
            if session is not None:
                session.close()
        with self._run_locks_guard:
            self._run_locks.pop(key, None)
        logger.info("[forget] Dropped agent state for %s", key)

    def close(self) -> None:
        with self._agents_lock:
            for session in self._sessions.values():
                session.close()
            self._sessions.clear()
            self._agents.clear()
