"""itinerary-jobs CLI.

Submitting and polling across processes needs a shared backend
(JOB_STORE_BACKEND=sqlite and REDIS_URL); with the in-memory defaults only
``plan`` and a single-process ``worker`` are useful.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from itinerary_jobs.application.context import AppContext, make_app_context
from itinerary_jobs.domain.exceptions import PlanningInfeasible
from itinerary_jobs.domain.models import ItineraryRequest, ItineraryResult
from itinerary_jobs.infrastructure.logging import StructuredLogger
from itinerary_jobs.planner.core import ItineraryPlanner
from itinerary_jobs.services.job_service import ItineraryJobService
from itinerary_jobs.services.worker import ItineraryWorker, run_workers

load_dotenv()


def _load_request(path: str) -> ItineraryRequest:
    raw = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    return ItineraryRequest.model_validate_json(raw)


def format_itinerary(result: ItineraryResult) -> str:
    summary = result.summary
    lines = [
        f"Itinerary ({summary.mode.value}, {summary.stops_count} stops, "
        f"{summary.total_duration_minutes}/{summary.time_budget_minutes} min)",
        "=" * 50,
    ]
    for leg, stop in zip(result.legs, result.stops):
        lines.append(f"  -> {leg.travel_minutes} min, {leg.distance_meters} m")
        lines.append(f"  {stop.visit_start}-{stop.visit_end}  {stop.name} [{stop.category}]")
        if stop.description:
            text = stop.description
            lines.append(f"     {text[:150]}{'...' if len(text) > 150 else ''}")
    last = result.legs[-1]
    lines.append(f"  -> {last.travel_minutes} min, {last.distance_meters} m to the end point")
    lines.append("=" * 50)
    lines.append(
        f"Travel {summary.total_travel_minutes} min, visits {summary.total_visit_minutes} min, "
        f"distance {summary.total_distance_meters} m"
    )
    return "\n".join(lines)


def _cmd_plan(ctx: AppContext, args: argparse.Namespace) -> int:
    request = _load_request(args.file)
    planner = ItineraryPlanner(ctx.providers, ctx.planner_settings, metrics=ctx.metrics)
    try:
        result = planner.build(request, logger=StructuredLogger(trace_id="cli-plan"))
    except PlanningInfeasible as exc:
        print(f"No itinerary: {exc.reason.value}: {exc.message}")
        return 2
    print(format_itinerary(result))
    if args.json:
        print(result.model_dump_json(indent=2))
    return 0


def _cmd_submit(ctx: AppContext, args: argparse.Namespace) -> int:
    job_id = ItineraryJobService(ctx).submit(_load_request(args.file))
    print(job_id)
    return 0


def _cmd_poll(ctx: AppContext, args: argparse.Namespace) -> int:
    view = ItineraryJobService(ctx).poll(args.job_id)
    if view is None:
        print("Job not found or expired")
        return 1
    print(view.model_dump_json(indent=2, exclude_none=True))
    return 0


def _cmd_worker(ctx: AppContext, args: argparse.Namespace) -> int:
    stop_event = threading.Event()
    threads = run_workers(ctx, args.threads, stop_event)
    print(f"Running {len(threads)} workers, Ctrl+C to stop")
    try:
        while any(thread.is_alive() for thread in threads):
            for thread in threads:
                thread.join(timeout=1.0)
    except KeyboardInterrupt:
        stop_event.set()
        for thread in threads:
            thread.join(timeout=ctx.job_settings.receive_wait_seconds + 5)
    return 0


def _cmd_sweep(ctx: AppContext, args: argparse.Namespace) -> int:
    removed = ItineraryWorker.from_context(ctx, name="cli-sweep").sweep()
    print(f"Removed {removed} expired jobs")
    return 0


def _cmd_stats(ctx: AppContext, args: argparse.Namespace) -> int:
    print(json.dumps({
        "store": getattr(ctx.store, "backend", "unknown"),
        "queue_depth": ctx.queue.approximate_count(),
        "metrics": ctx.metrics.snapshot(),
    }, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="itinerary-jobs")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="plan synchronously from a request JSON file")
    plan.add_argument("file", help="request JSON file, or - for stdin")
    plan.add_argument("--json", action="store_true", help="also print the raw result")
    plan.set_defaults(handler=_cmd_plan)

    submit = sub.add_parser("submit", help="create a job and queue it")
    submit.add_argument("file")
    submit.set_defaults(handler=_cmd_submit)

    poll = sub.add_parser("poll", help="show a job")
    poll.add_argument("job_id")
    poll.set_defaults(handler=_cmd_poll)

    worker = sub.add_parser("worker", help="consume the work queue")
    worker.add_argument("--threads", type=int, default=1)
    worker.set_defaults(handler=_cmd_worker)

    sweep = sub.add_parser("sweep", help="delete expired job records")
    sweep.set_defaults(handler=_cmd_sweep)

    stats = sub.add_parser("stats", help="backend and metrics snapshot")
    stats.set_defaults(handler=_cmd_stats)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        ctx = make_app_context()
        return args.handler(ctx, args)
    except (OSError, ValidationError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
