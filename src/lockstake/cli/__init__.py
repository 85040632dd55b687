"""Command-line interface for lockstake."""
