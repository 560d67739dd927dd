"""
Check execution mixin for the review pipeline.

Runs the independent rule checks from CHECK_DISPATCH concurrently over the
immutable topic sections. Trace events always come back in declaration
order, whatever order the checks finish in. A failing check propagates;
the orchestrator is the single recovery point.
"""

import asyncio
import importlib
import time

from logger import get_logger
from models import (
    CoverageStatus, ExecutionResult, GraphPath, GraphTraceEvent, TopicSection, TraceStatus, now_iso,
)
from dispatch import CHECK_DISPATCH, CHECK_RESULT_FIELD, CHECK_SKIPPED_ROUTES

logger = get_logger(__name__)


def _summarize(field_name: str, value) -> str:
    if field_name == "coverage_gaps":
        missing = sum(1 for g in value if g.status == CoverageStatus.MISSING)
        return f"{len(value)} topics checked, {missing} missing"
    if field_name == "conflicts":
        return f"{len(value)} conflicts"
    return f"{len(value)} flags" + (f": {', '.join(value)}" if value else "")


class CheckExecutionMixin:
    """Parallel rule check execution."""

    async def _run_check(self, check_name: str, topic_sections, route_path):
        """Dispatch one check via the dispatch table. Returns (result, event)."""
        if check_name not in CHECK_DISPATCH:
            raise ValueError(f"Unknown check: {check_name}")

        if route_path in CHECK_SKIPPED_ROUTES.get(check_name, set()):
            ts = now_iso()
            return None, GraphTraceEvent(
                node=check_name,
                status=TraceStatus.SKIPPED,
                reason=f"Not required on {route_path.value} path",
                started_at=ts,
                ended_at=ts,
                duration_ms=0,
            )

        module_path, func_name, args_fn = CHECK_DISPATCH[check_name]
        module = importlib.import_module(module_path)
        func = getattr(module, func_name)
        args, kwargs = args_fn(topic_sections, route_path)

        started_at = now_iso()
        t0 = time.perf_counter()
        result = await asyncio.to_thread(func, *args, **kwargs)
        duration_ms = int((time.perf_counter() - t0) * 1000)

        event = GraphTraceEvent(
            node=check_name,
            status=TraceStatus.EXECUTED,
            decision=_summarize(CHECK_RESULT_FIELD[check_name], result),
            started_at=started_at,
            ended_at=now_iso(),
            duration_ms=duration_ms,
            inputs_summary=f"{len(topic_sections)} topics, path={route_path.value}",
        )
        return result, event

    async def _execute_parallel_checks(
        self,
        topic_sections: list[TopicSection],
        route_path: GraphPath,
    ) -> ExecutionResult:
        """Run every check once and collect findings plus trace events."""
        check_names = list(CHECK_DISPATCH)
        logger.info(f"Executing {len(check_names)} checks for path {route_path.value}")

        outcomes = await asyncio.gather(*(
            self._run_check(name, topic_sections, route_path) for name in check_names
        ))

        fields = {}
        events = []
        for name, (result, event) in zip(check_names, outcomes):
            if result is not None:
                fields[CHECK_RESULT_FIELD[name]] = result
            events.append(event)

        return ExecutionResult(**fields, events=events)
