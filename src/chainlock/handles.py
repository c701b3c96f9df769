"""
Handles — Explicit Union of Mutable Profiles and Locked Components

Orchestration code holds either a live profile or a locked component. Rather
than probing objects for methods, both are wrapped in a handle carrying a
``kind`` discriminant and dispatched on it.

Usage:
    handle = LockedHandle(component)
    result = await dispatch(handle, task, timeout=30.0)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from chainlock.locking import ExecutionResult, LockedComponent
from chainlock.models import NodeProfile, Task, TaskResult


@dataclass(frozen=True)
class MutableHandle:
    profile: NodeProfile
    kind: Literal["mutable"] = field(default="mutable", init=False)


@dataclass(frozen=True)
class LockedHandle:
    component: LockedComponent
    kind: Literal["locked"] = field(default="locked", init=False)


Handle = Union[MutableHandle, LockedHandle]


def wrap(target: LockedComponent | NodeProfile) -> Handle:
    """Wrap a component or profile in the matching handle."""
    if isinstance(target, LockedComponent):
        return LockedHandle(target)
    if isinstance(target, NodeProfile):
        return MutableHandle(target)
    raise TypeError(f"cannot build a handle for {type(target).__name__}")


async def dispatch(
    handle: Handle, task: Task, timeout: float | None = None
) -> TaskResult | ExecutionResult:
    """Run ``task`` on whatever the handle wraps.

    Locked components go through guarded execution, so refusals and failures
    come back as results. Mutable profiles are called directly and their
    exceptions propagate.
    """
    if isinstance(handle, LockedHandle):
        return await handle.component.execute_guarded(task, execution_timeout=timeout)
    if isinstance(handle, MutableHandle):
        return await asyncio.wait_for(handle.profile.process_task(task), timeout=timeout)
    raise TypeError(f"unknown handle type: {type(handle).__name__}")


def describe_handle(handle: Handle) -> dict[str, Any]:
    if isinstance(handle, LockedHandle):
        component = handle.component
        return {
            "kind": handle.kind,
            "id": component.component_id,
            "original_node_id": component.metadata.original_node_id,
            "domains": list(component.metadata.context_snapshot.domains),
            "context_hash": component.context_hash,
            "is_public": component.is_public(),
            "usage_count": component.get_usage_stats()["usage_count"],
        }
    if isinstance(handle, MutableHandle):
        state = handle.profile.get_state()
        return {
            "kind": handle.kind,
            "id": state.id,
            "domains": [state.domain, *state.subdomains],
            "expertise_level": state.expertise_level,
        }
    raise TypeError(f"unknown handle type: {type(handle).__name__}")
