"""Shared type aliases for the core and domain layers."""
from typing import Any, Dict, Literal

NodeType = Literal["dialogue", "scene", "choice", "branch", "end"]
StoryFormat = Literal["json", "yaml"]
GameStateMapping = Dict[str, Any]

NODE_TYPES: tuple[str, ...] = ("dialogue", "scene", "choice", "branch", "end")

__all__ = ["GameStateMapping", "NODE_TYPES", "NodeType", "StoryFormat"]
