"""
Engine host detection.

Some helpers only make sense inside an SDM engine pipeline node, where the
engine injects its context through the environment:

- SDM_ENGINE_RUNTIME=true|false  marks the engine host
- SDM_PIPELINE_ID, SDM_NODE_ID, SDM_RUN_ID  identify the running node
- SDM_DATABASE and the other SDM_* client variables (see sdm.config)

Calling such a helper anywhere else raises RuntimeEnvironmentError.
"""

from __future__ import annotations

import functools
import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from loguru import logger

from .exceptions import RuntimeEnvironmentError

F = TypeVar("F", bound=Callable)

ENGINE_FLAG = "SDM_ENGINE_RUNTIME"


def in_engine_runtime() -> bool:
    v = os.getenv(ENGINE_FLAG)
    if v is None:
        return False
    return str(v).lower() in ("1", "true", "yes", "on")


def requires_engine(func: F) -> F:
    """Decorator: raise RuntimeEnvironmentError unless running inside the engine host."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if not in_engine_runtime():
            raise RuntimeEnvironmentError(
                f"{func.__qualname__}() is only available inside the SDM engine runtime "
                f"({ENGINE_FLAG} is not set)"
            )
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


@dataclass(frozen=True)
class EngineContext:
    pipeline_id: str
    node_id: str
    run_id: Optional[str] = None
    database: Optional[str] = None


@requires_engine
def get_engine_context() -> EngineContext:
    pipeline_id = os.getenv("SDM_PIPELINE_ID")
    node_id = os.getenv("SDM_NODE_ID")
    if not pipeline_id or not node_id:
        raise RuntimeEnvironmentError("Engine runtime is missing SDM_PIPELINE_ID or SDM_NODE_ID")
    ctx = EngineContext(
        pipeline_id=pipeline_id,
        node_id=node_id,
        run_id=os.getenv("SDM_RUN_ID") or None,
        database=os.getenv("SDM_DATABASE") or None,
    )
    logger.debug(f"Engine context: pipeline={ctx.pipeline_id} node={ctx.node_id} run={ctx.run_id}")
    return ctx


@requires_engine
def client_from_engine():
    """Unopened SDMClient configured from the engine-injected environment."""
    from .client import SDMClient

    return SDMClient.from_env()
