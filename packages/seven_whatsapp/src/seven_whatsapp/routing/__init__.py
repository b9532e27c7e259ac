"""
WhatsApp Routing

Tool resolution from webhooks and conversation state management.
"""

from seven_whatsapp.routing.conversation import ConversationManager
from seven_whatsapp.routing.tool_resolver import ToolResolver

__all__ = [
    "ConversationManager",
    "ToolResolver",
]
