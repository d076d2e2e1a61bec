"""
Studio agent package: state containers, actions and the chat service.
"""
from .actions import ActionContext, ActionRegistry, build_registry
from .service import ChatTurn, StudioAgentService
from .state import AgentState, ProjectScope

__all__ = [
    "ActionContext",
    "ActionRegistry",
    "build_registry",
    "ChatTurn",
    "StudioAgentService",
    "AgentState",
    "ProjectScope",
]
