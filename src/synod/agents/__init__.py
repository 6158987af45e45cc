"""
Agents - chat history, the agent invoker, toolsets and the A2A remote channel.
"""

from synod.agents.a2a import A2AChannel
from synod.agents.history import ChatHistory, ChatMessage
from synod.agents.invoker import AgentInvoker, build_prompt
from synod.agents.tools import Toolbox, ToolCall

__all__ = [
    "A2AChannel",
    "AgentInvoker",
    "ChatHistory",
    "ChatMessage",
    "ToolCall",
    "Toolbox",
    "build_prompt",
]
