"""Relay: ACP session bridge for event-driven coding agents.

Relay drives an interactive coding agent over the Agent Client Protocol,
turning the agent's partial, repeated message events into ordered,
non-duplicated session updates and relaying permission decisions back.
"""

__version__ = "0.1.0"
