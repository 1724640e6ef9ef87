from __future__ import annotations

import json
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from ..errors import ConfettiError
from .fileset import Fileset
from .logging import attach_file_handler, detach_file_handler, get_logger
from .utils import project_log_file, runs_dir


TaskFn = Callable[..., Fileset]


@dataclass
class TaskSpec:
    name: str
    fn: TaskFn
    help: str = ""


def task(name: str, help: str = ""):
    """Decorator to declare a task on a function.

    The wrapped function is called as `fn(params=..., fileset=...)` with the
    parsed config and the current fileset, and must return the fileset for the
    next task.
    """

    def deco(fn: TaskFn):
        doc = help or (fn.__doc__ or "").strip().split("\n\n")[0]
        spec = TaskSpec(name=name, fn=fn, help=" ".join(doc.split()))
        setattr(fn, "_task_spec", spec)
        return fn

    return deco


def topo_sort(nodes: Iterable[str], edges: Iterable[tuple[str, str]]) -> list[str]:
    nodes = list(nodes)
    incoming = {n: set() for n in nodes}
    outgoing = {n: set() for n in nodes}
    for u, v in edges:
        if u not in incoming or v not in incoming:
            raise ValueError(f"Edge references unknown node: {(u, v)}")
        outgoing[u].add(v)
        incoming[v].add(u)
    ordered: list[str] = []
    # Seed in declaration order so unrelated tasks keep the order they were given
    roots = [n for n in reversed(nodes) if not incoming[n]]
    while roots:
        n = roots.pop()
        ordered.append(n)
        for m in sorted(outgoing[n], key=nodes.index, reverse=True):
            incoming[m].discard(n)
            outgoing[n].discard(m)
            if not incoming[m]:
                roots.append(m)
    if any(incoming[n] for n in nodes):
        raise ValueError("Cycle detected in task graph")
    return ordered


def chain(names: list[str]) -> list[tuple[str, str]]:
    """Edges running `names` one after the other."""
    return list(zip(names, names[1:]))


class Pipeline:
    def __init__(
        self,
        tasks: dict[str, TaskSpec],
        edges: list[tuple[str, str]],
        name: str = "pipeline",
    ):
        self.name = name
        self.tasks = tasks
        self.edges = edges
        self.order = topo_sort(tasks.keys(), edges)
        self.logger = get_logger(f"confetti.{self.name}")

    def select_steps(self, from_step: str | None, until_step: str | None) -> list[str]:
        ordered = self.order
        if from_step:
            if from_step not in self.tasks:
                raise KeyError(f"Unknown step: {from_step}")
            ordered = ordered[ordered.index(from_step):]
        if until_step:
            if until_step not in ordered:
                raise KeyError(f"Unknown step: {until_step}")
            ordered = ordered[: ordered.index(until_step) + 1]
        return ordered

    def run(
        self,
        params: dict,
        fileset: Fileset | None = None,
        from_step: str | None = None,
        until_step: str | None = None,
        retries: int = 0,
    ) -> Fileset:
        fileset = fileset if fileset is not None else Fileset()
        run_id = time.strftime("%Y%m%d-%H%M%S")
        run_dir = Path(runs_dir(params)) / self.name / run_id
        os.makedirs(run_dir, exist_ok=True)

        params = dict(params)
        params["runtime"] = dict(params.get("runtime") or {}, run_id=run_id)

        selected = self.select_steps(from_step, until_step)
        log_file = project_log_file(params)
        handler = attach_file_handler(Path(log_file)) if log_file else None
        try:
            self.logger.info("Selected steps: %s", " → ".join(selected))
            return self._run_steps(selected, params, fileset, run_id, run_dir, retries)
        finally:
            if handler is not None:
                detach_file_handler(handler)

    def _run_steps(
        self,
        selected: list[str],
        params: dict,
        fileset: Fileset,
        run_id: str,
        run_dir: Path,
        retries: int,
    ) -> Fileset:
        state = {
            "pipeline": self.name,
            "run_id": run_id,
            "steps": [],
            "python": sys.version,
        }

        for step_name in selected:
            spec = self.tasks[step_name]
            step_logger = get_logger(f"confetti.{self.name}.{step_name}")
            attempt = 0
            while True:
                try:
                    step_logger.info("Run: %s", step_name)
                    started = time.monotonic()
                    result = spec.fn(params=params, fileset=fileset)
                    if result is not None:
                        fileset = result
                    state["steps"].append(
                        {
                            "name": step_name,
                            "status": "ok",
                            "seconds": round(time.monotonic() - started, 3),
                            "files": len(fileset),
                        }
                    )
                    break
                except Exception as e:  # noqa: BLE001
                    attempt += 1
                    step_logger.exception(
                        "Step failed (%s), attempt %d/%d",
                        step_name,
                        attempt,
                        retries + 1,
                    )
                    # Only our own errors say whether a retry is safe
                    retryable = isinstance(e, ConfettiError) and e.retryable
                    if attempt > retries or not retryable:
                        state["steps"].append(
                            {
                                "name": step_name,
                                "status": "error",
                                "error": str(e),
                                "category": getattr(e, "category", type(e).__name__),
                                "metadata": getattr(e, "metadata", {}),
                            }
                        )
                        _write_state(run_dir, state)
                        raise
            _write_state(run_dir, state)
        return fileset


def _write_state(run_dir: Path, state: dict) -> None:
    with open(run_dir / "state.json", "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2, default=str)
