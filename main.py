#!/usr/bin/env python3
"""Pulsewatch - CLI Entry Point."""
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config, channel_defaults, DEFAULT_RULES_PATH
    from models.database import Database
    from monitor.metrics import MetricAccessor
    from monitor.scheduler import EvaluationScheduler
    from alerts.engine import AlertEngine
    from alerts.dispatcher import NotificationDispatcher
    from alerts.lifecycle import LifecyclePublisher
    from alerts.broadcaster import EventBroadcaster
    from alerts.channels import (ConsoleChannel, FileChannel, EmailChannel,
                                 SlackChannel, WebhookChannel)
    from notifications.email_sender import EmailSender
    from notifications.slack_notifier import SlackNotifier
    from notifications.webhook_sender import WebhookSender

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    sched_cfg = config["scheduler"]
    metrics = MetricAccessor(db, staleness_seconds=sched_cfg["staleness_seconds"])

    file_cfg = config.get("file", {})
    channels = {
        "console": ConsoleChannel(console),
        "file": FileChannel(file_cfg.get("log_path", "data/alerts.jsonl")),
        "email": EmailChannel(EmailSender(config)),
        "slack": SlackChannel(SlackNotifier(timeout=config.get("slack", {}).get("timeout_seconds", 10))),
        "webhook": WebhookChannel(WebhookSender(timeout=config.get("webhook", {}).get("timeout_seconds", 10))),
    }

    notif_cfg = config["notifications"]
    dispatcher = NotificationDispatcher(
        channels,
        defaults=channel_defaults(config),
        project_names=db.get_project_name,
        store=db,
        max_workers=notif_cfg.get("max_workers", 8),
        timeout=notif_cfg.get("dispatch_timeout_seconds", 30),
    )
    broadcaster = EventBroadcaster()
    publisher = LifecyclePublisher(db, dispatcher, broadcaster)
    engine = AlertEngine(db, metrics, publisher)
    scheduler = EvaluationScheduler(engine, interval_seconds=sched_cfg["interval_seconds"],
                                    max_workers=sched_cfg["max_workers"])

    rules_path = config.get("rules", {}).get("path") or DEFAULT_RULES_PATH

    return {
        "config": config, "db": db, "metrics": metrics, "dispatcher": dispatcher,
        "broadcaster": broadcaster, "publisher": publisher, "engine": engine,
        "scheduler": scheduler, "rules_path": rules_path,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="pulsewatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Pulsewatch - Alert rule evaluation and notification dispatch."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _print_report(report):
    if report is None:
        console.print("[yellow]Previous tick still running, skipped[/yellow]")
        return
    console.print(f"Evaluated {report.evaluated} rule(s), "
                  f"{report.skipped} skipped, {report.failed} failed")
    for rid in report.triggered:
        console.print(f"  [bold red]TRIGGERED[/bold red] alert {rid}")
    for rid in report.resolved:
        console.print(f"  [green]RESOLVED[/green] alert {rid}")


# ──────────────────────────────────────────────────────
# RUN / TICK
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def run(ctx):
    """Evaluate rules on a schedule until interrupted."""
    c = _get_components(ctx)
    from alerts.lifecycle import TRIGGERED, RESOLVED, ACKNOWLEDGED

    def show(event, payload):
        name = payload.get("name", payload.get("alertId"))
        console.print(f"[dim]{payload.get('timestamp', '')[:19]}[/dim] {event} {name}")

    for event in (TRIGGERED, RESOLVED, ACKNOWLEDGED):
        c["broadcaster"].subscribe(event, show)

    scheduler = c["scheduler"]
    console.print(f"[bold]Pulsewatch[/bold] evaluating every {scheduler.interval}s. "
                  "Press Ctrl+C to stop.\n")
    scheduler.start()
    try:
        while scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop(timeout=30)
        c["db"].close()
    console.print("\n[dim]Stopped.[/dim]")


@cli.command()
@click.pass_context
def tick(ctx):
    """Run a single evaluation pass."""
    c = _get_components(ctx)
    _print_report(c["scheduler"].run_once())


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Alert rule management."""
    pass


@rules.command("list")
@click.option("--project", default=None, help="Only rules of this project")
@click.pass_context
def rules_list(ctx, project):
    """List stored alert rules."""
    c = _get_components(ctx)
    stored = c["db"].list_alerts(project_id=project)
    if not stored:
        console.print("[dim]No alert rules. Run: pulsewatch rules sync[/dim]")
        return
    phases = c["engine"].states.items()
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Project")
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Severity")
    table.add_column("Status")
    table.add_column("Enabled")
    for a in stored:
        phase = phases.get(a.id)
        status = a.status.value + (f" ({phase.phase.value})" if phase else "")
        table.add_row(str(a.id), a.project_id, a.name,
                      f"{a.metric_type} {a.condition.describe()} {a.threshold:g} for {a.condition.duration_seconds}s",
                      a.severity.value, status,
                      "[green]✓[/green]" if a.enabled else "[red]✗[/red]")
    console.print(table)


@rules.command("sync")
@click.option("--file", "rules_file", default=None, help="Rules YAML (default: configured path)")
@click.pass_context
def rules_sync(ctx, rules_file):
    """Load rules and projects from YAML into the database."""
    c = _get_components(ctx)
    from alerts.rules_manager import RulesManager
    manager = RulesManager(rules_file or c["rules_path"])
    created, updated = manager.sync(c["db"])
    console.print(f"[green]✓[/green] {created} created, {updated} updated "
                  f"({len(manager.get_all_rules())} rules in {manager.rules_path})")


@rules.command("show")
@click.argument("alert_id", type=int)
@click.pass_context
def rules_show(ctx, alert_id):
    """Show one alert rule."""
    c = _get_components(ctx)
    alert = c["db"].get_alert(alert_id)
    if alert is None:
        console.print(f"[red]Alert {alert_id} not found[/red]")
        return
    table = Table(title=f"Alert {alert_id}", show_header=False)
    table.add_column("", style="dim")
    table.add_column("")
    for key, val in alert.to_dict().items():
        table.add_row(key, "" if val is None else str(val))
    console.print(table)


@rules.command("enable")
@click.argument("alert_id", type=int)
@click.pass_context
def rules_enable(ctx, alert_id):
    """Enable an alert rule."""
    c = _get_components(ctx)
    if c["engine"].enable_rule(alert_id) is None:
        console.print(f"[red]Alert {alert_id} not found[/red]")
        return
    console.print(f"[green]✓[/green] Alert {alert_id} enabled")


@rules.command("disable")
@click.argument("alert_id", type=int)
@click.pass_context
def rules_disable(ctx, alert_id):
    """Disable an alert rule."""
    c = _get_components(ctx)
    if c["engine"].disable_rule(alert_id) is None:
        console.print(f"[red]Alert {alert_id} not found[/red]")
        return
    console.print(f"[green]✓[/green] Alert {alert_id} disabled")


@rules.command("delete")
@click.argument("alert_id", type=int)
@click.pass_context
def rules_delete(ctx, alert_id):
    """Delete an alert rule."""
    c = _get_components(ctx)
    if not c["engine"].delete_rule(alert_id):
        console.print(f"[red]Alert {alert_id} not found[/red]")
        return
    console.print(f"[green]✓[/green] Alert {alert_id} deleted")


@rules.command("test")
@click.pass_context
def rules_test(ctx):
    """Show what every rule's condition reads right now (no side effects)."""
    c = _get_components(ctx)
    results = c["engine"].test_rules()
    table = Table(title="Alert Rules Test", show_header=True)
    table.add_column("Rule")
    table.add_column("Metric")
    table.add_column("Condition")
    table.add_column("Current")
    table.add_column("Met")
    table.add_column("Phase")
    for r in results:
        val = f"{r['current_value']:.2f}" if r["current_value"] is not None else "N/A"
        if r["stale"]:
            val += " [dim](stale)[/dim]"
        met = "[green]YES[/green]" if r["condition_met"] else "[dim]no[/dim]"
        table.add_row(r["name"], r["metric"], f"{r['condition']} {r['threshold']:g}",
                      val, met, r["phase"])
    console.print(table)


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert lifecycle and history."""
    pass


@alerts.command("ack")
@click.argument("alert_id", type=int)
@click.option("--by", "actor", required=True, help="Who is acknowledging")
@click.pass_context
def alerts_ack(ctx, alert_id, actor):
    """Acknowledge an active alert."""
    c = _get_components(ctx)
    from models.alerts import ValidationError
    try:
        c["publisher"].acknowledge(alert_id, actor)
    except KeyError:
        console.print(f"[red]Alert {alert_id} not found[/red]")
        return
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        return
    console.print(f"[green]✓[/green] Alert {alert_id} acknowledged by {actor}")


@alerts.command("history")
@click.option("--limit", default=50, help="Events to show")
@click.pass_context
def alerts_history(ctx, limit):
    """Show recent triggered/resolved/acknowledged events."""
    c = _get_components(ctx)
    events = c["db"].get_recent_alert_events(limit=limit)
    if not events:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title="Alert History", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Alert")
    table.add_column("Event")
    table.add_column("Message")
    for e in events:
        table.add_row(e["created_at"][:19], str(e["alert_id"]), e["event"], (e["message"] or "")[:70])
    console.print(table)


@alerts.command("notifications")
@click.option("--alert", "alert_id", default=None, type=int, help="Only this alert")
@click.option("--limit", default=50, help="Entries to show")
@click.pass_context
def alerts_notifications(ctx, alert_id, limit):
    """Show per-channel notification outcomes."""
    c = _get_components(ctx)
    entries = c["db"].get_notification_log(alert_id=alert_id, limit=limit)
    if not entries:
        console.print("[dim]No notifications sent yet[/dim]")
        return
    table = Table(title="Notification Log", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Alert")
    table.add_column("Channel")
    table.add_column("Status")
    table.add_column("Error")
    styles = {"sent": "green", "skipped": "dim", "failed": "red"}
    for n in entries:
        style = styles.get(n["status"], "")
        table.add_row(n["sent_at"][:19], str(n["alert_id"]), n["channel"],
                      f"[{style}]{n['status']}[/{style}]", (n["error"] or "")[:60])
    console.print(table)


# ──────────────────────────────────────────────────────
# METRICS
# ──────────────────────────────────────────────────────
@cli.group()
def metrics():
    """Metric samples."""
    pass


@metrics.command("record")
@click.argument("project_id")
@click.argument("metric_type")
@click.argument("value", type=float)
@click.option("--unit", default="", help="Unit label")
@click.pass_context
def metrics_record(ctx, project_id, metric_type, value, unit):
    """Record one metric sample for a project."""
    c = _get_components(ctx)
    from models.metrics import MetricSample
    sample = MetricSample(project_id=project_id, metric_type=metric_type, value=value, unit=unit)
    sample_id = c["db"].record_metric(sample)
    console.print(f"[green]✓[/green] Recorded {metric_type}={value:g}{unit} for {project_id} (#{sample_id})")


@metrics.command("latest")
@click.argument("project_id")
@click.argument("metric_type")
@click.pass_context
def metrics_latest(ctx, project_id, metric_type):
    """Show the latest sample and whether it is fresh."""
    c = _get_components(ctx)
    from utils.formatters import format_value, time_ago
    sample = c["metrics"].latest(project_id, metric_type)
    if sample is None:
        console.print(f"[dim]No {metric_type} samples for {project_id}[/dim]")
        return
    stale = sample.age_seconds() > c["metrics"].staleness_seconds
    fresh_str = "[yellow]stale[/yellow]" if stale else "[green]fresh[/green]"
    console.print(f"{project_id} {metric_type} = {format_value(sample.value)}{sample.unit} "
                  f"({time_ago(sample.timestamp)}, {fresh_str})")


# ──────────────────────────────────────────────────────
# NOTIFY
# ──────────────────────────────────────────────────────
@cli.group()
def notify():
    """Notification channels."""
    pass


@notify.command("test")
@click.argument("channel")
@click.option("--recipient", "recipients", multiple=True, help="Email recipient (repeatable)")
@click.option("--url", default=None, help="Webhook URL for slack/webhook")
@click.pass_context
def notify_test(ctx, channel, recipients, url):
    """Send a test notification through one channel."""
    c = _get_components(ctx)
    config = {}
    if recipients:
        config["recipients"] = list(recipients)
    if url:
        config["url"] = url
        config["webhook_url"] = url
    if c["dispatcher"].send_test(channel.lower(), config):
        console.print(f"[green]✓[/green] Test notification sent via {channel}")
    else:
        console.print(f"[red]Test notification via {channel} failed. Check logs.[/red]")


if __name__ == "__main__":
    cli()
