"""`create-site` task.

Builds the static-site CloudFormation template, creates the stack, follows its
events until it settles and saves the stack outputs next to the project.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import typer

from .. import aws, cloudformation, report
from ..errors import MissingOptionError, StackCreationError
from ..orchestrator import task
from ..orchestrator.fileset import Fileset
from ..orchestrator.logging import get_logger
from ..orchestrator.utils import outputs_file_name, require, stack_name
from ..serialize import save_outputs


ROUTE53_CONSOLE = "https://console.aws.amazon.com/route53/home?region=us-east-1#hosted-zones:"


@task(name="create-site")
def create_site(params: Dict[str, Any], fileset: Fileset) -> Fileset:
    """Create all resources for ideal deployment of static sites and Single Page Apps.

    The domain your site should be reached under is passed via the `domain`
    option. If you are supplying a root/APEX domain, DNS management via
    Route53 (`dns`) is required.
    """
    logger = get_logger("confetti.create_site")
    opts = params.get("create_site") or {}

    creds = aws.resolve_creds(opts.get("creds") or params.get("creds"))
    domain = require(opts.get("domain"), "Domain is required!")
    dns = bool(opts.get("dns"))
    if cloudformation.root_domain(domain) and not dns:
        raise MissingOptionError("Root domain setups must enable `dns` option")

    tpl = cloudformation.template(dns=dns)
    stn = stack_name(domain)

    if opts.get("dry_run"):
        logger.info("Dry run, not creating stack %s", stn)
        typer.echo(json.dumps(tpl, indent=2))
        return fileset

    ran = cloudformation.run_template(creds, stn, tpl, {"UserDomain": domain})
    report.info("Reporting stack-creation events for stack:")
    typer.echo(ran["stack_id"])
    typer.echo("")
    status = report.report_stack_events(
        ran["stack_id"],
        creds,
        verbose=bool(opts.get("verbose")),
        report_cb=report.cf_report,
        poll_interval=float(opts.get("poll_interval", 5.0)),
    )
    if status != "CREATE_COMPLETE":
        raise StackCreationError(
            f"Stack {stn} finished with status {status}",
            metadata={"stack_id": ran["stack_id"], "status": status},
        )

    fname = Path(opts.get("outputs_dir") or ".") / outputs_file_name(domain)
    outputs = cloudformation.get_outputs(creds, ran["stack_id"])
    save_outputs(fname, ran["stack_id"], outputs)
    typer.echo("")
    report.print_outputs(outputs)
    typer.echo("")
    report.info(f"These outputs have also been saved to {fname}")

    if dns:
        typer.echo("")
        report.info("You're using a root domain setup.")
        typer.echo("Make sure your domain is setup to use the nameservers by the Route53 hosted zone.")
        typer.echo("To look up these nameservers go to: ")
        report.info(ROUTE53_CONSOLE)
    return fileset
