"""
Structured logging for agent_registry.

JSON logs with timestamp, event_type, program and signature context.
Use get_logger() in all modules for aggregation-friendly output.
"""

from agent_registry.registry_logging.logger import bind_program, get_logger

__all__ = ["bind_program", "get_logger"]
