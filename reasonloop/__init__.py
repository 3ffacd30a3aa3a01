"""reasonloop - a tool-calling LLM agent loop."""

__version__ = "0.1.0"

from reasonloop.agent import Agent, run_agent
from reasonloop.config import Config, ModelConfig
from reasonloop.hooks import AfterHookResult, BeforeHookResult, ToolHookContext
from reasonloop.schemas import AgentRequest, AgentResult, Base64Image, UrlImage
from reasonloop.streaming import StreamEvent

__all__ = [
    "AfterHookResult",
    "Agent",
    "AgentRequest",
    "AgentResult",
    "Base64Image",
    "BeforeHookResult",
    "Config",
    "ModelConfig",
    "StreamEvent",
    "ToolHookContext",
    "UrlImage",
    "__version__",
    "run_agent",
]
