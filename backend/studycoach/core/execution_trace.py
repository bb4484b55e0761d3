"""
Execution trace - per-request record of the steps the engine took
"""
from typing import List, Dict, Any, Optional
from datetime import datetime
from contextvars import ContextVar

# Context variable for async-safe per-request storage
_trace_context: ContextVar[Optional[List[Dict[str, Any]]]] = ContextVar('execution_trace', default=None)


class ExecutionTrace:
    """
    Captures the steps taken while handling one request (routing, context
    assembly, dispatch, fallbacks). Uses contextvars so concurrent requests
    never see each other's steps.
    """

    @classmethod
    def clear(cls):
        """Start a fresh trace for the current request"""
        _trace_context.set([])

    @classmethod
    def add(cls, component: str, step: str, emoji: str = "🤔", metadata: Dict[str, Any] = None):
        steps = _trace_context.get()
        if steps is None:
            steps = []
            _trace_context.set(steps)

        steps.append({
            "component": component,
            "step": step,
            "emoji": emoji,
            "timestamp": datetime.now().isoformat(),
            "metadata": metadata or {}
        })

        # Also print to console for debugging
        print(f"[{component}] {emoji} {step}")

    @classmethod
    def get_all(cls) -> List[Dict[str, Any]]:
        return list(_trace_context.get() or [])

    @classmethod
    def get_summary(cls) -> str:
        steps = cls.get_all()
        if not steps:
            return "No steps recorded"
        return " → ".join(f"{s['emoji']} {s['component']}: {s['step']}" for s in steps)


# Global instance
execution_trace = ExecutionTrace()
