"""CLI entrypoint for VaultFlow."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from vaultflow.core.exceptions import ConfigError, GenerationFailed, QuotaExceeded, UsageServiceError
from vaultflow.core.factory import ComponentBundle, ComponentFactory
from vaultflow.core.models import Tier, TierUsage
from vaultflow.council.catalog import COUNCIL_MEMBERS
from vaultflow.export import formats
from vaultflow.quality.gate import validate
from vaultflow.quota.tracker import quota_status, tier_policy
from vaultflow.workflow.controller import NextAction, WorkflowController

logger = logging.getLogger("vaultflow.cli")

_TIERS = [tier.value for tier in Tier]


def _setup_logging(verbose: bool = False) -> None:
    """Apply logging configuration from config/default.yaml."""
    from vaultflow.core.config import load_config

    try:
        config = load_config()
        level_name = config.logging.level
        fmt = config.logging.format
    except ConfigError:
        level_name = "INFO"
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr)


@click.group()
@click.option("--verbose", is_flag=True, default=False, help="Enable verbose (DEBUG) logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """VaultFlow command line interface."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    load_dotenv()
    _setup_logging(verbose=verbose)


@cli.command("council")
def council_cmd() -> None:
    """List the council personas."""
    for member in COUNCIL_MEMBERS:
        click.echo(click.style(f"{member.id:<10}", bold=True) + f" {member.name} - {member.title}")
        click.echo(f"{'':<10}  \"{member.sample_line}\"")
        click.echo(f"{'':<10}  Expertise: {', '.join(sorted(member.expertise_tags))}")


@cli.command("quota")
@click.option("--tier", required=True, type=click.Choice(_TIERS), help="Subscription tier.")
@click.option("--used", required=True, type=int, help="Generations used in the current window.")
@click.option(
    "--limit",
    required=False,
    type=int,
    default=None,
    help="Window limit (-1 for unlimited). Defaults to the tier's plan limit.",
)
def quota_cmd(tier: str, used: int, limit: Optional[int]) -> None:
    """Show quota state for a usage snapshot."""
    if limit is None:
        limit = tier_policy(tier).limit
    status = quota_status(TierUsage(tier=Tier(tier), used=used, limit=limit))

    click.echo(f"Tier:      {tier_policy(status.tier).name}")
    click.echo(f"Used:      {status.used}")
    click.echo(f"Limit:     {'unlimited' if status.unlimited else status.limit}")
    click.echo(f"Remaining: {status.remaining}")
    click.echo(f"Usage:     {status.percent:.0f}%")
    if status.at_limit:
        click.echo(click.style("At limit", fg="red", bold=True))
    elif status.near_limit:
        click.echo(click.style("Near limit", fg="yellow"))
    if status.upgrade_message:
        click.echo(status.upgrade_message)


@cli.command("validate")
@click.argument("content_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def validate_cmd(ctx: click.Context, content_path: Path) -> None:
    """Run the quality gate over a JSON file of offer sections."""
    content = _load_structured(content_path)
    if not isinstance(content, dict):
        raise click.ClickException("Content file must hold an object of section -> text")

    warnings = validate(content)
    if not warnings:
        click.echo(click.style("Quality gate passed.", fg="green"))
        return
    for warning in warnings:
        click.echo(click.style(f"- {warning}", fg="yellow"))
    ctx.exit(1)


@cli.command("run")
@click.option(
    "--brief",
    "brief_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML or JSON brief: council, form fields, optional tier and guidance outcomes.",
)
@click.option(
    "--out",
    "out_dir",
    required=False,
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("vault_export"),
    show_default=True,
    help="Directory for export artifacts.",
)
@click.option("--config-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.option("--env", default=None, help="Config overlay name (config/<env>.yaml).")
@click.option(
    "--tier",
    type=click.Choice(_TIERS),
    default=None,
    help="Track usage in-process for this tier instead of calling the account service.",
)
@click.option("--skip-guidance", is_flag=True, default=False, help="Skip the guidance check.")
def run_cmd(
    brief_path: Path,
    out_dir: Path,
    config_dir: Optional[Path],
    env: Optional[str],
    tier: Optional[str],
    skip_guidance: bool,
) -> None:
    """Drive one offer-building session end to end."""
    brief = _load_structured(brief_path)
    if not isinstance(brief, dict):
        raise click.ClickException("Brief must be a mapping")

    local_tier = tier or brief.get("tier")
    if local_tier is not None and local_tier not in _TIERS:
        raise click.ClickException(f"Unknown tier '{local_tier}' (expected one of {', '.join(_TIERS)})")

    try:
        bundle = ComponentFactory.create(config_dir=config_dir, env=env, local_tier=local_tier)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    controller = asyncio.run(_drive_session(bundle, brief, skip_guidance))
    logger.info(
        "Session %s reached '%s' after %d generation(s)",
        controller.session.session_id,
        controller.step.value,
        controller.session.generations,
    )
    _write_exports(controller, out_dir)


async def _drive_session(
    bundle: ComponentBundle, brief: dict[str, Any], skip_guidance: bool
) -> WorkflowController:
    controller = bundle.new_controller()
    try:
        controller.next()

        for member_id in brief.get("council", []):
            if not controller.toggle_council(str(member_id)):
                click.echo(f"Council member '{member_id}' not added (unknown or selection full).")
        _advance_or_fail(controller)

        form = brief.get("form") or {}
        if not isinstance(form, dict):
            raise click.ClickException("Brief form must be a mapping of field -> value")
        try:
            controller.update_form(**{str(k): str(v) for k, v in form.items()})
        except ValidationError as exc:
            raise click.ClickException(f"Invalid brief form: {_validation_summary(exc)}") from exc
        _advance_or_fail(controller)

        try:
            await controller.generate()
        except QuotaExceeded as exc:
            raise click.ClickException(exc.upgrade_message or str(exc)) from exc
        except GenerationFailed as exc:
            hint = " Please try again." if exc.retryable else ""
            raise click.ClickException(f"{exc}{hint}") from exc
        except UsageServiceError as exc:
            raise click.ClickException(str(exc)) from exc

        controller.next()

        outcomes = brief.get("guidance")
        if skip_guidance or outcomes == "skip":
            controller.skip_guidance()
        elif isinstance(outcomes, list):
            for outcome in outcomes:
                controller.record_guidance(bool(outcome))

        await controller.flush_notifications()
        return controller
    finally:
        await _close_clients(bundle)


async def _close_clients(bundle: ComponentBundle) -> None:
    for component in (bundle.backend, bundle.usage):
        closer = getattr(component, "aclose", None)
        if closer is not None:
            await closer()
    llm_client = getattr(bundle.backend, "llm_client", None)
    if llm_client is not None:
        await llm_client.aclose()


def _advance_or_fail(controller: WorkflowController) -> None:
    step = controller.step
    if not controller.next():
        raise click.ClickException(f"Cannot continue past '{step.value}': {controller.blocked_reason()}")


def _write_exports(controller: WorkflowController, out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    session = controller.session

    copy_path = out_dir / "offer-copy.txt"
    copy_path.write_text(controller.copy_text() or "", encoding="utf-8")
    click.echo(f"Wrote offer copy to {copy_path}")

    download = controller.download_text()
    if download is None:
        click.echo(click.style("Quality gate flagged the offer; download withheld:", fg="yellow"))
        for warning in session.quality_warnings:
            click.echo(f"  - {warning}")
    else:
        path = out_dir / formats.OFFER_FILENAME
        path.write_text(download, encoding="utf-8")
        click.echo(f"Wrote {path}")

    if not controller.next_actions_unlocked:
        done, total = session.guidance.progress()
        click.echo(f"Next Best Actions locked: guidance check incomplete ({done}/{total} valid).")
        return

    for action, filename in (
        (NextAction.AD_CAMPAIGN, formats.AD_CAMPAIGN_FILENAME),
        (NextAction.EMAIL_SEQUENCE, formats.EMAIL_SEQUENCE_FILENAME),
    ):
        text = controller.next_best_action(action)
        if text is not None:
            path = out_dir / filename
            path.write_text(text, encoding="utf-8")
            click.echo(f"Wrote {path}")


@cli.command("export-hooks")
@click.option("--tier", required=True, type=click.Choice(["starter", "pro", "vault"]))
@click.argument("hooks_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--out", "out_path", type=click.Path(dir_okay=False, path_type=Path), default=None)
def export_hooks_cmd(tier: str, hooks_path: Path, out_path: Optional[Path]) -> None:
    """Export generated hooks to the tier's CSV layout."""
    payload = _load_structured(hooks_path)
    hooks = payload.get("hooks") if isinstance(payload, dict) else payload
    if not isinstance(hooks, list):
        raise click.ClickException("Hooks file must hold a list of hooks (or {'hooks': [...]})")

    out_path = out_path or Path(formats.hook_csv_filename(tier))
    out_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        csv_text = formats.render_hook_csv(tier, hooks)
    except ValidationError as exc:
        raise click.ClickException(f"Invalid hook entry: {_validation_summary(exc)}") from exc
    out_path.write_text(csv_text, encoding="utf-8")
    click.echo(f"Exported {len(hooks)} hook(s) to {out_path}")


def _validation_summary(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "value"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def _load_structured(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise click.ClickException(f"Could not parse {path}: {exc}") from exc


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
