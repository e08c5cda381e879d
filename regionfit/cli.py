"""
Command line interface for managing rules and scoring snapshots.

Commands:
- rules list/show/versions/restore: inspect and restore rules
- export / import: rule bundles as JSON
- evaluate: score a snapshot file for a region
"""

import json
from typing import Any, Optional

import click

from regionfit.config import Config, RuleSystemConfig, StorageConfig
from regionfit.errors import RegionFitError
from regionfit.logging import initialize_logging
from regionfit.system import RuleConfigurationSystem


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _open_system(ctx: click.Context) -> RuleConfigurationSystem:
    settings = ctx.obj
    if settings["database_url"]:
        storage = StorageConfig(backend="sql", database_url=settings["database_url"])
    else:
        storage = StorageConfig(backend="file", data_dir=settings["data_dir"])
    system_config = Config(
        rules=RuleSystemConfig(
            load_default_rules=settings["load_defaults"],
            auto_backup=False,
            refresh_interval_seconds=0,
        ),
        storage=storage,
    )
    return RuleConfigurationSystem(system_config)


@click.group()
@click.option("--data-dir", default="rule_data", help="Directory of the file-backed store")
@click.option("--database-url", default=None, help="SQLAlchemy URL (overrides --data-dir)")
@click.option(
    "--no-defaults", is_flag=True, help="Do not seed default rules into an empty store"
)
@click.option("--log-level", default="WARNING", help="Console log level")
@click.pass_context
def cli(
    ctx: click.Context,
    data_dir: str,
    database_url: Optional[str],
    no_defaults: bool,
    log_level: str,
):
    """RegionFit rule configuration CLI."""
    initialize_logging(level=log_level.upper(), enable_file_logging=False)
    ctx.obj = {
        "data_dir": data_dir,
        "database_url": database_url,
        "load_defaults": not no_defaults,
    }


@cli.group()
def rules():
    """Inspect and restore rules."""
    pass


@rules.command("list")
@click.option("--category", default=None, help="Only rules in this category")
@click.option("--region", default=None, help="Only rules applying to this region")
@click.option("--include-deleted", is_flag=True, help="Include soft-deleted rules")
@click.option("--sort-by", default=None, help="Field to sort by (e.g. priority, weight)")
@click.option("--desc", is_flag=True, help="Sort descending")
@click.option("--as-json", is_flag=True, help="Print full rule JSON")
@click.pass_context
def list_rules(
    ctx: click.Context,
    category: Optional[str],
    region: Optional[str],
    include_deleted: bool,
    sort_by: Optional[str],
    desc: bool,
    as_json: bool,
):
    """
    List rules.

    Example:
        regionfit rules list --region DE --sort-by priority --desc
    """
    with _open_system(ctx) as system:
        try:
            found = system.get_all_rules(
                category=category,
                region=region,
                include_deleted=include_deleted,
                sort_by=sort_by,
                sort_order="desc" if desc else "asc",
            )
        except RegionFitError as e:
            raise click.ClickException(str(e))

        if as_json:
            _echo_json([r.to_dict() for r in found])
            return
        for rule in found:
            flags = " (deleted)" if rule.deleted else ("" if rule.enabled else " (disabled)")
            click.echo(
                f"{rule.id:<36} {rule.category.value:<15} {rule.priority.value:<9} "
                f"v{rule.version}{flags}"
            )
        click.echo(f"\n{len(found)} rules")


@rules.command("show")
@click.argument("rule_id")
@click.pass_context
def show_rule(ctx: click.Context, rule_id: str):
    """Print one rule as JSON."""
    with _open_system(ctx) as system:
        try:
            _echo_json(system.get_rule(rule_id).to_dict())
        except RegionFitError as e:
            raise click.ClickException(str(e))


@rules.command("versions")
@click.argument("rule_id")
@click.pass_context
def rule_versions(ctx: click.Context, rule_id: str):
    """List the version history of a rule, oldest first."""
    with _open_system(ctx) as system:
        history = system.get_rule_versions(rule_id)
        if not history:
            raise click.ClickException(f"No version history for rule: {rule_id}")
        for entry in history:
            click.echo(f"{entry.version:<10} {entry.version_created_at}")


@rules.command("restore")
@click.argument("rule_id")
@click.argument("version")
@click.pass_context
def restore_rule(ctx: click.Context, rule_id: str, version: str):
    """Restore a rule from a historical version (creates a new version)."""
    with _open_system(ctx) as system:
        try:
            rule = system.restore_rule_version(rule_id, version)
        except RegionFitError as e:
            raise click.ClickException(str(e))
        click.echo(f"Restored {rule_id} from {version} as v{rule.version}")


@cli.command("export")
@click.option("--output", "-o", default=None, help="Write the bundle to this file")
@click.option("--include-versions", is_flag=True, help="Include version history")
@click.option("--include-ab-tests", is_flag=True, help="Include A/B tests")
@click.pass_context
def export_bundle(
    ctx: click.Context, output: Optional[str], include_versions: bool, include_ab_tests: bool
):
    """Export rules as a JSON bundle."""
    with _open_system(ctx) as system:
        bundle = system.export_rules(
            include_versions=include_versions, include_ab_tests=include_ab_tests
        )
    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump(bundle, f, indent=2, ensure_ascii=False)
        click.echo(f"Exported {bundle['count']} rules to {output}")
    else:
        _echo_json(bundle)


@cli.command("import")
@click.argument("bundle_file", type=click.Path(exists=True))
@click.option("--overwrite", is_flag=True, help="Update rules that already exist")
@click.pass_context
def import_bundle(ctx: click.Context, bundle_file: str, overwrite: bool):
    """Import rules from a JSON bundle."""
    with open(bundle_file, encoding="utf-8") as f:
        bundle = json.load(f)

    with _open_system(ctx) as system:
        try:
            result = system.import_rules(bundle, overwrite=overwrite)
        except RegionFitError as e:
            raise click.ClickException(str(e))

    click.echo(
        f"Imported {result.imported}, updated {result.updated}, skipped {result.skipped}"
    )
    for error in result.errors:
        click.echo(f"  error: {error}", err=True)


@cli.command("evaluate")
@click.argument("snapshot_file", type=click.Path(exists=True))
@click.option("--region", required=True, help="Target region code (e.g. DE)")
@click.option("--user-id", default=None, help="User id for A/B test assignment")
@click.option("--five-bucket", is_flag=True, help="Report crossBorder separately")
@click.pass_context
def evaluate_snapshot(
    ctx: click.Context,
    snapshot_file: str,
    region: str,
    user_id: Optional[str],
    five_bucket: bool,
):
    """
    Score a content snapshot (JSON file) for a region.

    Example:
        regionfit evaluate page.json --region DE
    """
    with open(snapshot_file, encoding="utf-8") as f:
        snapshot = json.load(f)

    with _open_system(ctx) as system:
        result = system.evaluate(
            snapshot, region, user_id=user_id, five_bucket=five_bucket or None
        )
    _echo_json(result.to_dict())


if __name__ == "__main__":
    cli()
