"""ChaseAI local control plane.

Serves per-port instruction contexts to AI agents and routes sensitive actions
through a human-in-the-loop approval prompt, one locally-bound HTTP server per
configured port.
"""

__version__ = "0.1.0"
