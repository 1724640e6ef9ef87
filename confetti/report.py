"""Console reporting: stack creation events, sync actions and stack outputs."""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Iterable, Optional

import typer
from botocore.exceptions import ClientError

from . import aws
from .cloudformation import stack_error
from .errors import StackTimeoutError
from .orchestrator.logging import get_logger


log = get_logger("confetti.report")

THROTTLING_CODES = frozenset({"Throttling", "ThrottlingException", "RequestLimitExceeded"})
MAX_BACKOFF = 60.0

StackEvent = Dict[str, Any]
ReportCallback = Callable[[StackEvent, bool], None]


def info(message: str) -> None:
    typer.secho(message, bold=True)


def is_terminal(status: str) -> bool:
    return not status.endswith("_IN_PROGRESS") and (
        status.endswith("_COMPLETE") or status.endswith("_FAILED")
    )


def _is_stack_event(event: StackEvent, stack_id: str) -> bool:
    return event.get("ResourceType") == "AWS::CloudFormation::Stack" and (
        event.get("PhysicalResourceId") == stack_id
        or event.get("LogicalResourceId") == event.get("StackName")
    )


def _status_color(status: str) -> Optional[str]:
    if status.endswith("_FAILED") or status.startswith("ROLLBACK") or "_ROLLBACK_" in status:
        return typer.colors.RED
    if status.endswith("_COMPLETE"):
        return typer.colors.GREEN
    return typer.colors.YELLOW


def cf_report(event: StackEvent, verbose: bool = False) -> None:
    if verbose:
        typer.echo(json.dumps(event, indent=2, sort_keys=True, default=str))
        return
    ts = event.get("Timestamp")
    stamp = ts.strftime("%H:%M:%S") if hasattr(ts, "strftime") else str(ts or "")
    status = event.get("ResourceStatus", "")
    line = "{}  {}  {}  {}".format(
        stamp,
        typer.style(f"{status:<30}", fg=_status_color(status)),
        f"{event.get('ResourceType', ''):<36}",
        event.get("LogicalResourceId", ""),
    )
    reason = event.get("ResourceStatusReason")
    if reason:
        line += f"\n          {reason}"
    typer.echo(line)


def s3_report(action: str, s3_key: str, dry_run: bool = False) -> None:
    prefix = "[dry-run] " if dry_run else ""
    typer.echo(f"{prefix}{action:<8} {s3_key}")


def print_outputs(outputs: Dict[str, Dict[str, Any]]) -> None:
    for _, o in outputs.items():
        info(str(o.get("description") or ""))
        typer.echo(f"-> {o.get('output_value')}")


def _fetch_new_events(cf, stack_id: str, seen: set) -> list[StackEvent]:
    """Events not in `seen`, oldest first.

    The API returns newest first, so paging stops at the first known event.
    """
    fresh: list[StackEvent] = []
    kwargs: Dict[str, Any] = {"StackName": stack_id}
    while True:
        page = cf.describe_stack_events(**kwargs)
        for ev in page.get("StackEvents", []):
            if ev["EventId"] in seen:
                return list(reversed(fresh))
            fresh.append(ev)
        token = page.get("NextToken")
        if not token:
            return list(reversed(fresh))
        kwargs["NextToken"] = token


def report_stack_events(
    stack_id: str,
    creds: Optional[Dict[str, str]] = None,
    verbose: bool = False,
    report_cb: ReportCallback = cf_report,
    poll_interval: float = 5.0,
    timeout: float = 3600.0,
    client=None,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Report stack events until the stack reaches a terminal status.

    Every event is handed to `report_cb` exactly once, in chronological order.
    Returns the stack's final status (e.g. CREATE_COMPLETE, ROLLBACK_COMPLETE).
    """
    cf = client or aws.client("cloudformation", creds or {})
    seen: set = set()
    backoff = poll_interval
    deadline = time.monotonic() + timeout

    def check_deadline() -> None:
        if time.monotonic() > deadline:
            raise StackTimeoutError(
                f"Stack {stack_id} did not finish within {timeout:.0f}s",
                metadata={"stack_id": stack_id, "events_seen": len(seen)},
            )

    while True:
        try:
            events = _fetch_new_events(cf, stack_id, seen)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code not in THROTTLING_CODES:
                raise stack_error(e, stack_id, "Polling events of") from e
            check_deadline()
            backoff = min(max(backoff, 1.0) * 2, MAX_BACKOFF)
            log.warning("Throttled while polling %s, retrying in %.0fs", stack_id, backoff)
            sleep(backoff)
            continue
        backoff = poll_interval
        for ev in events:
            seen.add(ev["EventId"])
            report_cb(ev, verbose)
            status = ev.get("ResourceStatus", "")
            if _is_stack_event(ev, stack_id) and is_terminal(status):
                log.info("Stack %s finished with %s", stack_id, status)
                return status
        check_deadline()
        sleep(poll_interval)


def summarize(results: Dict[str, Iterable[str]]) -> None:
    typer.echo("")
    info(f"{len(list(results.get('uploaded', [])))} new files uploaded.")
    info(f"{len(list(results.get('updated', [])))} existing files updated.")
    info(f"{len(list(results.get('deleted', [])))} files deleted.")
