import asyncio
import sys
from typing import Any, Coroutine, Optional

import aiohttp
import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from binauthz_demo.core.config import settings
from binauthz_demo.core.logger import configure_logging, get_logger
from binauthz_demo.models.step_record import STEP_STATUS_COMPLETED
from binauthz_demo.payloads.resources import AttestationRequest, AttestationResult, ValidationReport
from binauthz_demo.services.attestation_service import AttestationError
from binauthz_demo.services.command_service import CommandError
from binauthz_demo.services.config_service import ConfigurationError
from binauthz_demo.services.container_analysis_service import ContainerAnalysisError
from binauthz_demo.services.gpg_service import GpgError
from binauthz_demo.services.ioc import initiate_ledger_services, initiate_services

logger = get_logger(__name__)

POD_MANIFEST = """apiVersion: v1
kind: Pod
metadata:
  name: attested-pod
spec:
  containers:
  - name: attested-container
    image: "{image}"
    ports:
    - containerPort: 80"""


# unreachable services, timeouts and undecodable CLI output
REMOTE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)


def _run(ctx: click.Context, coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a service coroutine and turn failures into exit codes."""
    try:
        return asyncio.run(coro)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo(ctx.get_usage(), err=True)
        sys.exit(1)
    except CommandError as e:
        logger.error("❌ %s", e)
        sys.exit(e.returncode or 1)
    except (AttestationError, ContainerAnalysisError, GpgError, *REMOTE_ERRORS) as e:
        logger.error("❌ %s", e)
        sys.exit(1)


def _cluster_options(func):
    func = click.option("-p", "--project", help="GCP project id (defaults to gcloud config)")(func)
    func = click.option("-z", "--zone", help="Compute zone (defaults to gcloud config)")(func)
    func = click.option("-c", "--cluster", help=f"Cluster name (default: {settings.CLUSTER_NAME})")(func)
    return func


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    configure_logging("DEBUG" if verbose else settings.LOG_LEVEL)
    if ctx.obj is None:
        ctx.obj = initiate_services(settings)


@cli.command()
@_cluster_options
@click.pass_context
def create(ctx: click.Context, cluster: Optional[str], zone: Optional[str], project: Optional[str]):
    """Create a GKE cluster with Binary Authorization enabled."""
    ioc = ctx.obj
    console = Console()

    async def _create():
        target = await ioc["ConfigService"].resolve_cluster(cluster, zone, project)
        console.print(
            Panel.fit(
                f"Cluster name: {target.name}\nZone: {target.zone}\nProject ID: {target.project}",
                title="Creating GKE cluster with Binary Authorization",
                border_style="blue",
            )
        )
        await ioc["ProvisionerService"].create_cluster(target)
        nodes = await ioc["ProvisionerService"].list_nodes()
        return target, nodes

    target, nodes = _run(ctx, _create())
    logger.info("✅ GKE cluster %s with Binary Authorization has been created.", target.name)
    console.print(nodes)


@cli.command()
@_cluster_options
@click.pass_context
def delete(ctx: click.Context, cluster: Optional[str], zone: Optional[str], project: Optional[str]):
    """Delete the demo cluster and print manual cleanup hints."""
    ioc = ctx.obj
    console = Console()

    async def _delete():
        target = await ioc["ConfigService"].resolve_cluster(cluster, zone, project)
        await ioc["ProvisionerService"].delete_cluster(target)
        return target

    target = _run(ctx, _delete())
    logger.info("✅ Deleted cluster %s", target.name)
    console.print(
        Panel.fit(
            "To delete container images from GCR:\n"
            f'gcloud container images delete "gcr.io/{target.project}/nginx@IMAGE_DIGEST" --force-delete-tags\n\n'
            "To delete attestors:\n"
            f'gcloud --project="{target.project}" beta container binauthz attestors delete "ATTESTOR"\n\n'
            "To delete Container Analysis notes:\n"
            'curl -X DELETE -H "Authorization: Bearer $(gcloud auth print-access-token)" '
            f'"{settings.CONTAINER_ANALYSIS_URL}/projects/{target.project}/notes/NOTE_ID"',
            title="Additional cleanup commands",
            border_style="yellow",
        )
    )


def _render_report(console: Console, report: ValidationReport) -> None:
    table = Table(title="Validation Summary")
    table.add_column("Check", style="cyan")
    table.add_column("Result", justify="center")
    rows = [
        ("Binary Authorization policy available", report.policy_available),
        ("Container Analysis API available", report.metadata_available),
        ("Binary Authorization enabled on cluster", report.cluster_enforcing),
    ]
    for label, ok in rows:
        table.add_row(label, "[green]passed[/green]" if ok else "[red]failed[/red]")
    console.print(table)
    if report.passed:
        console.print("[bold green]All validations passed! Your Binary Authorization setup is ready.[/bold green]")
    else:
        console.print("[bold red]Some validations failed. Please check the errors above.[/bold red]")


@cli.command()
@_cluster_options
@click.pass_context
def validate(ctx: click.Context, cluster: Optional[str], zone: Optional[str], project: Optional[str]):
    """Check that policy, metadata service and cluster enforcement are in place."""
    ioc = ctx.obj
    console = Console()

    async def _validate():
        target = await ioc["ConfigService"].resolve_cluster(cluster, zone, project)
        return await ioc["ValidatorService"].validate(target)

    report = _run(ctx, _validate())
    _render_report(console, report)
    if not report.passed:
        sys.exit(1)


def _render_attestation(console: Console, result: AttestationResult) -> None:
    table = Table(title="Attestations")
    table.add_column("Name", style="cyan")
    table.add_column("Created", style="green")
    for occurrence in result.attestations:
        table.add_row(str(occurrence.get("name", "-")), str(occurrence.get("createTime", "-")))
    console.print(table)
    console.print(
        Panel.fit(
            f"Image: {result.artifact_url}\nAttestor: {result.attestor_ref}",
            title="Attestation Complete",
            border_style="green",
        )
    )
    console.print("To use this image in a pod, use the following format with the digest:\n")
    console.print(POD_MANIFEST.format(image=result.artifact_url), markup=False, highlight=False)


@cli.command()
@click.option("-i", "--image", "image_path", help="Image path, e.g. nginx or gcr.io/PROJECT/nginx")
@click.option("-a", "--attestor", default=settings.ATTESTOR, show_default=True, help="Attestor name")
@click.option("-n", "--note-id", default=settings.NOTE_ID, show_default=True, help="Container Analysis note id")
@click.option("-t", "--tag", default=settings.IMAGE_TAG, show_default=True, help="Image tag to resolve")
@click.option("-p", "--project", help="GCP project id (defaults to gcloud config)")
@click.option("--signer", help="PGP identity used to sign (defaults to the gcloud account)")
@click.option("--resume", is_flag=True, help="Skip steps completed by a previous run")
@click.pass_context
def attest(
    ctx: click.Context,
    image_path: Optional[str],
    attestor: str,
    note_id: str,
    tag: str,
    project: Optional[str],
    signer: Optional[str],
    resume: bool,
):
    """Sign an image digest and submit an attestation for it."""
    ioc = initiate_ledger_services(ctx.obj)
    console = Console()

    async def _attest():
        if not image_path:
            raise ConfigurationError("Image path is required. Use -i option.")
        resolved_project = await ioc["ConfigService"].resolve_project(project)
        signer_email = await ioc["ConfigService"].resolve_signer(signer)
        request = AttestationRequest(
            project=resolved_project,
            image_path=image_path,
            image_tag=tag,
            attestor=attestor,
            note_id=note_id,
            note_description=ioc["Settings"].NOTE_DESCRIPTION,
            signer_email=signer_email,
        )
        console.print(
            Panel.fit(
                f"Attestor: {attestor}\nNote ID: {note_id}\nImage: {image_path}:{tag}\nProject ID: {resolved_project}",
                title="Attesting Container Image",
                border_style="blue",
            )
        )
        return await ioc["AttestationService"].attest(request, resume=resume)

    result = _run(ctx, _attest())
    if result.skipped_steps:
        logger.info("Resumed; skipped steps: %s", ", ".join(result.skipped_steps))
    _render_attestation(console, result)


@cli.command()
@click.option("--workflow", help="Only show markers for this workflow")
@click.pass_context
def status(ctx: click.Context, workflow: Optional[str]):
    """Show recorded step completion markers."""
    records = initiate_ledger_services(ctx.obj)["StepRecordDao"].list_records(workflow=workflow)
    console = Console()
    if not records:
        console.print("No recorded steps.")
        return

    table = Table(title="Recorded steps")
    table.add_column("Workflow", style="cyan", no_wrap=True)
    table.add_column("Scope", style="magenta")
    table.add_column("Step")
    table.add_column("Status", justify="center")
    table.add_column("Updated")
    table.add_column("Error", style="red")
    for record in records:
        status_text = "[green]completed[/green]" if record.status == STEP_STATUS_COMPLETED else f"[red]{record.status}[/red]"
        table.add_row(
            record.workflow,
            record.scope,
            record.step,
            status_text,
            record.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.error or "",
        )
    console.print(table)


if __name__ == "__main__":
    cli()
