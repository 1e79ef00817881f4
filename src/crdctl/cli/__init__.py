import logging
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import find_dotenv, load_dotenv
from kubernetes.config import ConfigException
from pydantic import ValidationError
from typing_extensions import Annotated

import crdctl.cli.utils as cli_utils
from crdctl.cli.utils import ReturnCode
from crdctl.cluster.client import CRDClient, load_kube_config
from crdctl.config import Settings, configure_logging
from crdctl.crd.base import Operation
from crdctl.crd.loader import load_crds
from crdctl.crd.reconciler import CRDReconciler, ErrorPolicy
from crdctl.errors import AggregateReconcileError, CRDCtlError
from crdctl.wait.adapters import (
    NVIDIA_DRIVER_GROUP,
    NVIDIA_DRIVER_PLURAL,
    NVIDIA_DRIVER_VERSION,
    READY_STATE,
    StatefulResourceClient,
)
from crdctl.wait.poller import CancelContext

load_dotenv(find_dotenv(usecwd=True))

logger = logging.getLogger("crdctl")

app = typer.Typer(
    help="Tools for managing Custom Resource Definitions (CRDs)",
    add_completion=False,
)

CRDS_PATH_HELP = (
    "Path to CRD manifest file or directory (can be specified multiple times, "
    "directories are searched recursively)"
)


@app.callback()
def main(
    ctx: typer.Context,
    debug: Annotated[
        bool,
        typer.Option("--debug", "-d", envvar="DEBUG", help="Enable debug-level logging"),
    ] = False,
):
    """Apply, delete and watch Kubernetes CRDs."""
    try:
        settings = Settings.from_env(debug=debug)
    except (ValidationError, ValueError) as e:
        typer.echo(f"Invalid configuration: {e}", err=True)
        raise typer.Exit(code=int(ReturnCode.ERROR))
    configure_logging(settings)
    ctx.obj = settings


def run_crd_operation(
    settings: Settings,
    operation: Operation,
    paths: List[Path],
    stop_on_error: bool = False,
    strict: bool = False,
    workers: Optional[int] = None,
    wait_timeout: Optional[float] = None,
):
    verb = "Applying" if operation is Operation.APPLY else "Deleting"
    paths_text = ", ".join(str(p) for p in paths)
    logger.info(f"{verb} CRDs from {len(paths)} path(s): {paths_text}")

    policy = ErrorPolicy.STOP if stop_on_error else ErrorPolicy(settings.error_policy)
    failure = f"failed to {operation.value} CRDs from {paths_text}"
    cancel = CancelContext()

    try:
        crds = load_crds(paths, strict=strict or settings.strict, logger=logger)
        load_kube_config(settings.kube_context)
        reconciler = CRDReconciler(
            CRDClient(),
            policy=policy,
            max_workers=workers or settings.workers,
            establish_timeout=wait_timeout or settings.wait_timeout,
            poll_interval=settings.poll_interval,
            cancel=cancel,
            logger=logger,
        )
        result = reconciler.process(crds, operation)
    except AggregateReconcileError as e:
        if e.result is not None:
            cli_utils.echo_result(e.result)
        cli_utils.exit_command(operation.value, ReturnCode.ERROR, f"{failure}: {e}")
    except (CRDCtlError, ConfigException) as e:
        cli_utils.exit_command(operation.value, ReturnCode.ERROR, f"{failure}: {e}")
    except KeyboardInterrupt:
        cancel.cancel()
        cli_utils.exit_command(operation.value, ReturnCode.INTERRUPTED, "interrupted")

    cli_utils.echo_result(result)
    done = "applied" if operation is Operation.APPLY else "deleted"
    cli_utils.exit_command(
        operation.value, ReturnCode.SUCCESS, f"Successfully {done} CRDs"
    )


@app.command("apply")
def apply(
    ctx: typer.Context,
    crds_path: Annotated[List[Path], typer.Option("--crds-path", help=CRDS_PATH_HELP)],
    stop_on_error: Annotated[
        bool, typer.Option("--stop-on-error", help="Stop at the first failing CRD")
    ] = False,
    strict: Annotated[
        bool, typer.Option("--strict", help="Fail on non-CRD documents")
    ] = False,
    workers: Annotated[
        Optional[int], typer.Option("--workers", min=1, help="CRDs applied in parallel")
    ] = None,
    wait_timeout: Annotated[
        Optional[float],
        typer.Option(
            "--wait-timeout", help="Seconds to wait for each CRD to become Established"
        ),
    ] = None,
):
    """Apply CRDs from the specified path"""
    run_crd_operation(
        ctx.obj,
        Operation.APPLY,
        crds_path,
        stop_on_error=stop_on_error,
        strict=strict,
        workers=workers,
        wait_timeout=wait_timeout,
    )


@app.command("delete")
def delete(
    ctx: typer.Context,
    crds_path: Annotated[List[Path], typer.Option("--crds-path", help=CRDS_PATH_HELP)],
    stop_on_error: Annotated[
        bool, typer.Option("--stop-on-error", help="Stop at the first failing CRD")
    ] = False,
    strict: Annotated[
        bool, typer.Option("--strict", help="Fail on non-CRD documents")
    ] = False,
    workers: Annotated[
        Optional[int], typer.Option("--workers", min=1, help="CRDs deleted in parallel")
    ] = None,
):
    """Delete CRDs from the specified path"""
    run_crd_operation(
        ctx.obj,
        Operation.DELETE,
        crds_path,
        stop_on_error=stop_on_error,
        strict=strict,
        workers=workers,
    )


@app.command("wait")
def wait(
    ctx: typer.Context,
    name: Annotated[str, typer.Option("--name", help="Custom resource name")],
    state: Annotated[
        str, typer.Option("--state", help="Target value of status.state")
    ] = READY_STATE,
    timeout: Annotated[
        float, typer.Option("--timeout", help="Seconds to wait before failing")
    ] = 600.0,
    group: Annotated[str, typer.Option("--group")] = NVIDIA_DRIVER_GROUP,
    version: Annotated[str, typer.Option("--version")] = NVIDIA_DRIVER_VERSION,
    plural: Annotated[str, typer.Option("--plural")] = NVIDIA_DRIVER_PLURAL,
    namespace: Annotated[
        Optional[str], typer.Option("--namespace", help="Omit for cluster-scoped kinds")
    ] = None,
    interval: Annotated[
        Optional[float], typer.Option("--interval", help="Seconds between checks")
    ] = None,
):
    """Wait until a custom resource reports the given status.state."""
    settings = ctx.obj
    cancel = CancelContext()
    try:
        load_kube_config(settings.kube_context)
        client = StatefulResourceClient(group, version, plural, namespace=namespace)
        if interval:
            client.polling_interval = interval
        client.wait_for_state(name, state, timeout, cancel=cancel)
    except (CRDCtlError, ConfigException) as e:
        cli_utils.exit_command("wait", ReturnCode.ERROR, str(e))
    except KeyboardInterrupt:
        cancel.cancel()
        cli_utils.exit_command("wait", ReturnCode.INTERRUPTED, "interrupted")

    cli_utils.exit_command(
        "wait", ReturnCode.SUCCESS, f"{plural}.{group} {name} reached state {state!r}"
    )


@app.command("operator")
def run_operator():
    """Run the operator that manages CRDs on startup and shutdown."""
    from crdctl.main import main

    main()
