"""Gemini delegation bridge for AI coding assistant tool hooks."""

from gemini_bridge.bridge import Bridge
from gemini_bridge.config import Config, load_config
from gemini_bridge.decision import DecisionEngine
from gemini_bridge.models import BridgeResponse, DecisionResult, ToolCall

__version__ = "2.0.0"

__all__ = [
    "Bridge",
    "BridgeResponse",
    "Config",
    "DecisionEngine",
    "DecisionResult",
    "ToolCall",
    "load_config",
]
