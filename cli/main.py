#!/usr/bin/env python3
import click
import json
from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from .client import SniperClient
from .config import save_token
import sys


def _money(value) -> str:
    return f"${float(value):,.2f}"


def _print_table(headers: List[str], rows: List[List[str]]):
    """Print rows in a box-drawn table sized to the widest cell of each column."""
    col_widths = [
        max([len(header)] + [len(row[i]) for row in rows])
        for i, header in enumerate(headers)
    ]

    def build_separator(left, middle, right, widths):
        return left + middle.join("─" * (w + 2) for w in widths) + right

    def build_row(values):
        return "│ " + " │ ".join(f"{values[i]:<{col_widths[i]}}" for i in range(len(values))) + " │"

    click.echo(build_separator("┌", "┬", "┐", col_widths))
    click.echo(build_row(headers))
    click.echo(build_separator("├", "┼", "┤", col_widths))
    for row in rows:
        click.echo(build_row(row))
    click.echo(build_separator("└", "┴", "┘", col_widths))


def _echo_fired(client: SniperClient, result: dict):
    fired = result.get("fired", [])
    click.echo(f"Tick at {client.to_local_time(result['now'], with_seconds=True)}: {len(fired)} bid(s) fired")
    for record in fired:
        buffer = "dynamic buffer" if record["allow_dynamic_buffer"] else "fixed"
        click.echo(f"  {record['auction_id']}  max {_money(record['amount'])}  ({buffer})")


@click.group()
def cli():
    """Domain auction sniping CLI"""
    pass


@cli.command()
@click.option("--username", prompt="Username")
@click.option("--password", prompt="Password", hide_input=True)
def auth(username, password):
    """Authenticate with the server."""
    try:
        client = SniperClient()
        token = client.authenticate(username, password)
        save_token(token)
        click.echo("Authentication successful!")
    except Exception as e:
        click.echo(f"Authentication failed: {e}", err=True)
        sys.exit(1)


@cli.command("list")
def list_auctions():
    """List tracked auctions, soonest ending first."""
    try:
        client = SniperClient()
        views = client.list_auctions()
        if not views:
            click.echo("No auctions tracked.")
            return

        headers = ["ID", "Domain", "Score", "Grade", "Risk", "Current", "Max Bid", "Ends In", "Status", "Bid At (Local)"]
        rows = []
        for view in views:
            auction, analysis, config, status = view["auction"], view["analysis"], view["config"], view["status"]
            rows.append([
                auction["id"],
                auction["domain"],
                str(analysis["score"]),
                analysis["strength"],
                analysis["risk"],
                _money(auction["current_bid"]),
                _money(config["max_bid"]),
                view["ends_in"],
                status["state"],
                client.to_local_time(view.get("bid_at")),
            ])
        _print_table(headers, rows)
    except Exception as e:
        click.echo(f"Failed to list auctions: {e}", err=True)
        sys.exit(1)


def _echo_view(client: SniperClient, view: dict):
    auction, analysis, config, status = view["auction"], view["analysis"], view["config"], view["status"]
    click.echo(f"{auction['domain']}  ({auction['marketplace']} • {auction['niche']})")
    click.echo(f"Score: {analysis['score']}  Grade: {analysis['strength']}  Risk: {analysis['risk']}")
    click.echo(f"Ends in: {view['ends_in']}  ({client.to_local_time(auction['ending_at'])})")
    click.echo(f"Current bid: {_money(auction['current_bid'])}  Increment: {_money(auction['bid_increment'])}  Bids: {auction['bids']}")
    click.echo(f"Recommended ceiling: {_money(analysis['recommended_max_bid'])}  Snipe offset: {analysis['snipe_offset_minutes']} min")
    if analysis["notes"]:
        click.echo("Signals:")
        for note in analysis["notes"]:
            click.echo(f"  • {note}")
    click.echo(
        f"Auto bid: {'on' if config['auto_bid'] else 'off'}  Max bid: {_money(config['max_bid'])}  "
        f"Offset: {config['snipe_offset']} min  Safety buffer: {view['safety_buffer']}"
    )
    click.echo(f"Status: {status['state']}  Bid at: {client.to_local_time(view.get('bid_at'))}  "
               f"Last run: {client.to_local_time(status.get('last_run'))}")


@cli.command()
@click.argument("auction_id")
def show(auction_id):
    """Show analysis, configuration and status for one auction."""
    try:
        client = SniperClient()
        _echo_view(client, client.get_auction(auction_id))
    except Exception as e:
        click.echo(f"Failed to get auction: {e}", err=True)
        sys.exit(1)


@cli.command()
def priority():
    """Show the highest-scoring auction."""
    try:
        client = SniperClient()
        view = client.get_priority()
        if view is None:
            click.echo("No auctions tracked.")
            return
        _echo_view(client, view)
    except Exception as e:
        click.echo(f"Failed to get priority pick: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("auction_id")
@click.option("--max-bid", type=str, default=None, help="Ceiling for the snipe bid.")
@click.option("--offset", type=int, default=None, help="Minutes before close to fire (1-45).")
@click.option("--auto-bid/--no-auto-bid", default=None, help="Enable or disable automation.")
@click.option("--auto-extend/--no-auto-extend", default=None, help="Allow a dynamic safety buffer.")
def configure(auction_id, max_bid, offset, auto_bid, auto_extend):
    """Update bid configuration. Unspecified options keep their current values."""
    try:
        client = SniperClient()
        current = client.get_auction(auction_id)["config"]
        max_bid_decimal = (
            Decimal(max_bid.replace("$", "").replace(",", "")) if max_bid is not None
            else Decimal(str(current["max_bid"]))
        )
        view = client.set_config(
            auction_id,
            auto_bid=current["auto_bid"] if auto_bid is None else auto_bid,
            max_bid=max_bid_decimal,
            snipe_offset=current["snipe_offset"] if offset is None else offset,
            enable_auto_extend=current["enable_auto_extend"] if auto_extend is None else auto_extend,
        )
        click.echo(f"Configuration saved for {view['auction']['domain']}: {view['status']['state']}")
        if view.get("bid_at"):
            click.echo(f"Bid at: {client.to_local_time(view['bid_at'], with_seconds=True)}")
    except InvalidOperation:
        click.echo(f"Invalid max bid format: {max_bid}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Failed to configure auction: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("auction_id")
@click.pass_context
def disable(ctx, auction_id):
    """Turn off auto bidding for an auction."""
    ctx.invoke(configure, auction_id=auction_id, max_bid=None, offset=None, auto_bid=False, auto_extend=None)


@cli.command()
@click.argument("auction_id")
def remove(auction_id):
    """Remove an auction from the feed."""
    try:
        client = SniperClient()
        client.remove_auction(auction_id)
        click.echo(f"Auction {auction_id} removed")
    except Exception as e:
        click.echo(f"Failed to remove auction: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("feed_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def load(feed_file):
    """Push auction snapshots from a JSON file into the feed."""
    try:
        raw = json.loads(feed_file.read_text())
        auctions = raw.get("auctions", []) if isinstance(raw, dict) else raw
        client = SniperClient()
        result = client.push_feed(auctions)
        click.echo(f"Loaded {result['received']} auctions ({result['tracked']} tracked)")
    except Exception as e:
        click.echo(f"Failed to load feed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--at", "at", type=str, default=None, help="ISO timestamp to tick at (default: now).")
def tick(at: Optional[str]):
    """Evaluate snipes now (or at a given time)."""
    now = None
    if at:
        try:
            now = datetime.fromisoformat(at.replace("Z", "+00:00"))
        except ValueError:
            raise click.BadParameter(f"not an ISO timestamp: {at}", param_hint="--at")
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
    try:
        client = SniperClient()
        _echo_fired(client, client.tick(now))
    except Exception as e:
        click.echo(f"Tick failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--hours", type=float, default=1.0, show_default=True)
def simulate(hours):
    """Fire every snipe that would be due within the next N hours."""
    try:
        client = SniperClient()
        _echo_fired(client, client.simulate(hours))
    except Exception as e:
        click.echo(f"Simulation failed: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
