from .approval import ConsoleApprover, StaticApprover
from .chat_client import GenericChatClient, build_chat_client, parse_chat_response
from .registry import FileAgentRegistry
from .runner import LLMAgentRunner, resolve_model_key

__all__ = [
    "ConsoleApprover",
    "FileAgentRegistry",
    "GenericChatClient",
    "LLMAgentRunner",
    "StaticApprover",
    "build_chat_client",
    "parse_chat_response",
    "resolve_model_key",
]
