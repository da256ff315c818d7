"""
QA Dashboard Agents Module
LLM-backed assistants for the dashboard chat
"""

from .base_agent import BaseAgent
from .chat_assistant import ChatAssistantAgent

__all__ = [
    'BaseAgent',
    'ChatAssistantAgent',
]
