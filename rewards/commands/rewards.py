"""
Rewards maintenance commands.

The email queue is drained on a schedule:

# Send pending reward emails (every 5 minutes)
*/5 * * * * cd /app && flask rewards send-emails --limit=50
"""

import click
from flask.cli import with_appcontext

from ..models.tier import seed_reward_tiers
from ..models.program import seed_rewards_config
from ..services.notification_service import notification_service
from ..services.tiers import load_tiers, resolve_tier, points_to_next_tier
from ..utils.cache import invalidate_tier_table


@click.group('rewards')
def rewards_cli():
    """Rewards program commands."""
    pass


@rewards_cli.command('seed-tiers')
@with_appcontext
def seed_tiers():
    """Create the default tier table if it is empty."""
    created = seed_reward_tiers()
    invalidate_tier_table()
    if created:
        click.echo(f"Created {created} reward tiers")
    else:
        click.echo("Reward tiers already exist, nothing to do")


@rewards_cli.command('seed-config')
@with_appcontext
def seed_config():
    """Create the program config row if missing."""
    if seed_rewards_config():
        click.echo("Rewards program config created")
    else:
        click.echo("Rewards program config already exists")


@rewards_cli.command('send-emails')
@click.option('--limit', type=int, default=50, help='Max emails to send this run')
@with_appcontext
def send_emails(limit):
    """Send pending reward emails through SendGrid."""
    result = notification_service.dispatch_pending(limit=limit)
    if not result['success']:
        click.echo(f"Not sent: {result.get('error')}")
        return

    click.echo(f"Sent: {result['sent']}")
    click.echo(f"Retrying: {result['retrying']}")
    click.echo(f"Failed: {result['failed']}")


@rewards_cli.command('resolve-tier')
@click.argument('points', type=click.IntRange(min=0))
@with_appcontext
def resolve_tier_command(points):
    """Show the tier a points balance falls into."""
    resolution = resolve_tier(points, load_tiers())
    click.echo(f"{points} points -> {resolution.current.name} ({resolution.current.multiplier}x)")
    if resolution.next:
        click.echo(
            f"Next: {resolution.next.name} in {points_to_next_tier(points, resolution)} points"
        )
    else:
        click.echo("Highest tier reached")


def init_app(app):
    app.cli.add_command(rewards_cli)
