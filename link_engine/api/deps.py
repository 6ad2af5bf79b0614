"""FastAPI dependencies."""

from typing import Optional

from link_engine.service import LinkEngine, create_link_engine

_link_engine: Optional[LinkEngine] = None


def get_link_engine() -> LinkEngine:
    """Dependency for the process-wide link engine."""
    global _link_engine
    if _link_engine is None:
        _link_engine = create_link_engine()
    return _link_engine

