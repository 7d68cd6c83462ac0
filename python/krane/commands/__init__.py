"""Subcommands exposed by the krane CLI."""
