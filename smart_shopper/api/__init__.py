"""
HTTP surface for Smart Shopper: dashboard endpoints and the Gemini proxy.
"""

from .app import AgentRegistry, create_app
from .proxy import router as proxy_router

__all__ = ["AgentRegistry", "create_app", "proxy_router"]
