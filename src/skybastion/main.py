import argparse
import json
import logging
from importlib.metadata import version
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console

from .errors import BastionError
from .logger import setup_logger
from .providers.gcp import GCPProvider
from .reconcile import reconcile
from .schemas.bastion import ReconcileRequest, RequeueAfter
from .status import JsonStatusStore

EXIT_REQUEUE = 75  # EX_TEMPFAIL: the scheduler should call again later


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Skybastion: reconcile a temporary SSH bastion host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run one reconcile pass against a GCE zone
  skybastion --request bastion.json --project-id my-project --zone us-west1-b

  # Keep endpoint status in a custom file, print the outcome as JSON
  skybastion --request bastion.json --project-id my-project --zone us-west1-b \\
      --status-file /var/lib/skybastion/status.json --json

Exit codes: 0 = endpoint published, 75 = not ready (call again later),
1 = terminal error.
""",
    )
    try:
        ver = version("skybastion")
    except Exception:
        ver = "unknown"
    parser.add_argument("--version", action="version", version=f"Skybastion v{ver}")

    parser.add_argument(
        "--request", required=True, help="JSON file holding the reconcile request"
    )
    parser.add_argument("--project-id", required=True, help="GCP Project ID")
    parser.add_argument("--zone", required=True, help="Zone to place the bastion in")
    parser.add_argument(
        "--status-file",
        default="bastion-status.json",
        help="JSON file the published endpoints are merged into",
    )
    parser.add_argument("--json", action="store_true", help="Output outcome as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO)
    console = Console(quiet=args.json)

    try:
        request = ReconcileRequest.model_validate_json(Path(args.request).read_text())
    except (OSError, ValidationError) as e:
        console.print(f"[red]Invalid request {args.request}: {e}[/red]")
        exit(1)

    provider = GCPProvider(project_id=args.project_id, zone=args.zone)
    store = JsonStatusStore(args.status_file)

    try:
        outcome = reconcile(provider, request, store)
    except BastionError as e:
        if args.json:
            print(json.dumps({"outcome": "error", "error": str(e)}))
        console.print(f"[bold red]Reconcile failed:[/bold red] {e}")
        exit(1)

    if isinstance(outcome, RequeueAfter):
        if args.json:
            print(
                json.dumps(
                    {
                        "outcome": "requeue",
                        "wait_seconds": outcome.wait.total_seconds(),
                        "cause": outcome.cause,
                    }
                )
            )
        console.print(
            f"[yellow]Not ready:[/yellow] {outcome.cause} "
            f"(retry in {outcome.wait.total_seconds():.0f}s)"
        )
        exit(EXIT_REQUEUE)

    if args.json:
        print(
            json.dumps(
                {"outcome": "succeeded", **outcome.endpoints.model_dump(mode="json")}
            )
        )
    public = outcome.endpoints.public
    console.print(
        f"[bold green]Bastion {request.bastion_name} ready[/bold green] "
        f"at {public.hostname or public.ip if public else 'unknown'}"
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        console = Console(stderr=True)
        console.print("\n[bold red]Operation cancelled by user.[/bold red]")
        exit(130)
