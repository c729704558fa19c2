from .prompts import SYSTEM_PROMPT, build_system_prompt
from .receptionist_agent import AgentReply, ReceptionistAgent, summarize_conversation

__all__ = [
    "SYSTEM_PROMPT",
    "build_system_prompt",
    "AgentReply",
    "ReceptionistAgent",
    "summarize_conversation",
]
