"""
Browser Bridge

Local HTTP bridge between a browser extension and chat model backends.

Components:
- gateway: Origin guard, provider dispatch and server lifecycle
- api: Route handlers
- relay: Capability model and remote SSE streaming
- generation_loop: Bounded agent tool loop
- tools: Agent tool executor
- path_safety: Workspace path confinement
"""

__version__ = "0.1.0"

from .gateway import BridgeGateway  # noqa: E402
