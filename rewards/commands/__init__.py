"""
CLI Commands for the rewards engine.

Usage:
    flask rewards seed-tiers             # Create default Bronze/Silver/Gold tiers
    flask rewards seed-config            # Create the program config row
    flask rewards send-emails --limit 50 # Drain the reward email queue
    flask rewards resolve-tier 7500      # Show the tier for a balance
"""
from .rewards import init_app as init_rewards_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_rewards_commands(app)
