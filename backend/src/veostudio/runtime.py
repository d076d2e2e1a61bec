"""
Runtime wiring: one object that owns every long-lived service of the backend.
"""
from __future__ import annotations

import logging
from typing import Optional

from veostudio.agent.actions import ActionContext, ActionRegistry, build_registry
from veostudio.agent.service import StudioAgentService
from veostudio.agent.state import AgentState
from veostudio.config import Config
from veostudio.gateway import MediaGateway
from veostudio.gemini import GeminiClient
from veostudio.media_store import MediaStore


logger = logging.getLogger(__name__)


class StudioRuntime:
    """
    Holds config, media stores, provider client, agent state and chat service.

    The FastAPI lifespan builds one of these (tests pass their own), calls
    :meth:`start` on startup and :meth:`close` on shutdown.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[GeminiClient] = None,
        registry: Optional[ActionRegistry] = None,
    ):
        self.config = config or Config.from_env()
        self.image_store = MediaStore(self.config.image_dir, self.config.image_url_prefix)
        self.video_store = MediaStore(
            self.config.video_dir,
            self.config.video_url_prefix,
            extension=".mp4",
            mime_type="video/mp4",
        )
        self.client = client or GeminiClient(self.config)
        self.gateway = MediaGateway(self.client, self.image_store, self.video_store)
        self.state = AgentState(self.config)
        self.registry = registry or build_registry()
        self.agent_service = StudioAgentService(self.config, self.state, self.registry, self.gateway)
        self.started = False

    def start(self) -> None:
        self.image_store.ensure_dir()
        self.video_store.ensure_dir()
        self.started = True
        logger.info(
            "[start] Media under %s, %d actions registered",
            self.config.media_root,
            len(self.registry.specs),
        )

    def close(self) -> None:
        self.agent_service.close()
        self.started = False
        logger.info("[close] Runtime stopped")

    def action_context(self, user_id: str, project_id: str) -> ActionContext:
        return self.agent_service.action_context(user_id, project_id)

    def dispatch(self, user_id: str, project_id: str, action_name: str, params: Optional[dict] = None) -> dict:
        return self.registry.dispatch(action_name, params, self.action_context(user_id, project_id))
