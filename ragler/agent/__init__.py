"""Collection quality agent: tools, memory, approval ledger and tool loop."""

from ragler.agent.memory import AgentMemory, ApprovalLedger
from ragler.agent.tool_loop import CollectionAgent
from ragler.agent.tools import AgentTool, ToolContext, ToolRegistry, build_default_tools

__all__ = [
    "AgentMemory",
    "AgentTool",
    "ApprovalLedger",
    "CollectionAgent",
    "ToolContext",
    "ToolRegistry",
    "build_default_tools",
]
