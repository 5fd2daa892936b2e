"""
Click CLI for acctpool.

    acctpool assign   -p osd-staging-1 -u alice
    acctpool list     -p osd-staging-1 [-u alice | -i 111111111111]
    acctpool unassign -p osd-staging-1 (-u alice | -i 111111111111) [--yes]
"""

import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click
import yaml
from botocore.exceptions import BotoCoreError, ClientError

from . import __version__
from .allocator import Allocator
from .config import PayerConfig, Settings, load_settings
from .errors import AccountPoolError, ReclamationAbortedError
from .gateway.aws import connect
from .locking import lock_for_payer
from .ownership import OwnershipIndex
from .provision import AccountProvisioner
from .reclaim import Reclaimer, ReclamationReport

OUTPUT_FORMATS = ["human", "json", "yaml"]


def configure_logging(verbosity: int) -> None:
    """WARNING by default, INFO with -v, DEBUG with -vv."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")
    if verbosity < 2:
        for name in ("botocore", "boto3", "urllib3"):
            logging.getLogger(name).setLevel(logging.WARNING)


def always_yes(prompt: str) -> bool:
    return True


def prompt_confirm(prompt: str) -> bool:
    return click.confirm(prompt, default=False, err=True)


def emit(ctx: click.Context, data: Any, human: str) -> None:
    """Print a result in the selected output format."""
    output = ctx.obj["output"]
    if output == "json":
        click.echo(json.dumps(data, indent=2))
    elif output == "yaml":
        click.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False).rstrip())
    else:
        click.echo(human)


def fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def resolve_payer(ctx: click.Context, name: str) -> PayerConfig:
    settings: Settings = ctx.obj["settings"]
    try:
        return settings.payer(name)
    except AccountPoolError as e:
        raise click.BadParameter(str(e), param_hint="'-p' / '--payer-account'")


@click.group()
@click.version_option(__version__, prog_name="acctpool")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Configuration file (YAML or JSON)")
@click.option("--verbose", "-v", count=True, help="More logging (-v info, -vv debug)")
@click.option("--output", "-o", type=click.Choice(OUTPUT_FORMATS), default="human", help="Output format")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: int, output: str):
    """
    acctpool - lend pooled AWS accounts to developers and take them back.
    """
    configure_logging(verbose)
    try:
        settings = load_settings(config_path)
    except AccountPoolError as e:
        fail(str(e))
    ctx.obj = {"settings": settings, "output": output}


@main.command()
@click.option("--payer-account", "-p", required=True, help="Payer account name")
@click.option("--username", "-u", required=True, help="Developer to assign the account to")
@click.option("--create-if-exhausted", is_flag=True, help="Create a new member account when the pool is empty")
@click.pass_context
def assign(ctx: click.Context, payer_account: str, username: str, create_if_exhausted: bool):
    """
    Assign a free pool account to a developer.
    """
    payer = resolve_payer(ctx, payer_account)
    try:
        gateway = connect(payer)
        allocator = Allocator(
            gateway.organizations,
            payer,
            lock=lock_for_payer(payer),
            provisioner=AccountProvisioner(gateway.organizations, payer) if create_if_exhausted else None,
        )
        result = allocator.run(username, create_if_exhausted=create_if_exhausted)
    except (AccountPoolError, ValueError) as e:
        fail(str(e))
    except (ClientError, BotoCoreError) as e:
        fail(f"AWS error while assigning an account: {e}")

    data = {"username": result.username, "account_id": result.account_id,
            "payer": result.payer, "created": result.created}
    emit(ctx, data, f"Account assigned:\n{result}".rstrip())


@main.command(name="list")
@click.option("--payer-account", "-p", required=True, help="Payer account name")
@click.option("--user", "-u", help="List the accounts owned by this user")
@click.option("--account-id", "-i", help="Show the owner of this account")
@click.option("--workers", type=click.IntRange(min=1), default=1, show_default=True,
              help="Parallel tag reads for the full listing")
@click.pass_context
def list_cmd(ctx: click.Context, payer_account: str, user: Optional[str], account_id: Optional[str], workers: int):
    """
    List claimed accounts by owner.
    """
    if user and account_id:
        raise click.UsageError("--user and --account-id are mutually exclusive")
    payer = resolve_payer(ctx, payer_account)

    try:
        gateway = connect(payer)
        index = OwnershipIndex(gateway.organizations, gateway.tagging)
        if account_id:
            owner = index.list_user_name(account_id)
            emit(ctx, {"account_id": account_id, "owner": owner}, owner)
            return
        if user:
            owners: Dict[str, List[str]] = {user: index.list_accounts_by_user(user)}
        else:
            owners = index.list_all_accounts(payer.claimed_ou_id, max_workers=workers)
    except AccountPoolError as e:
        fail(str(e))
    except (ClientError, BotoCoreError) as e:
        fail(f"AWS error while listing accounts: {e}")

    data = [{"username": name, "accounts": accounts} for name, accounts in owners.items()]
    lines = []
    for entry in data:
        lines.append(f"{entry['username']}:")
        lines.extend(f"  - {account}" for account in entry["accounts"])
    emit(ctx, data, "\n".join(lines))


def render_report(report: ReclamationReport) -> str:
    if report.declined:
        return "Unassign cancelled, nothing was changed."
    lines = []
    for account in report.accounts:
        state = "reclaimed" if not account.failed else "reclaimed with failures"
        lines.append(f"Account {account.account_id}: {state} "
                     f"({len(account.succeeded)} removed, {len(account.skipped)} skipped)")
    return "\n".join(lines)


def report_failures(report: ReclamationReport) -> None:
    for outcome in report.failed:
        click.echo(f"  FAILED {outcome.describe()}", err=True)


@main.command()
@click.option("--payer-account", "-p", required=True, help="Payer account name")
@click.option("--username", "-u", help="Unassign every account of this user")
@click.option("--account-id", "-i", help="Unassign this account")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def unassign(ctx: click.Context, payer_account: str, username: Optional[str], account_id: Optional[str], yes: bool):
    """
    Return accounts to the pool and delete the IAM artifacts left in them.
    """
    if bool(username) == bool(account_id):
        raise click.UsageError("Exactly one of --username or --account-id is required")
    payer = resolve_payer(ctx, payer_account)
    settings: Settings = ctx.obj["settings"]

    try:
        reclaimer = Reclaimer.from_settings(connect(payer), settings, payer,
                                            confirm=always_yes if yes else prompt_confirm)
        report = reclaimer.run(account_id=account_id, username=username)
    except ReclamationAbortedError as e:
        if e.report is not None:
            report_failures(e.report)
        fail(str(e))
    except AccountPoolError as e:
        fail(str(e))
    except (ClientError, BotoCoreError) as e:
        fail(f"AWS error while unassigning: {e}")

    emit(ctx, report.to_dict(), render_report(report))
    if report.failed:
        click.echo(f"{len(report.failed)} artifact(s) could not be removed:", err=True)
        report_failures(report)
        sys.exit(1)


if __name__ == "__main__":
    main()
