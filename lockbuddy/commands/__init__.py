"""Subcommand handlers for the lockbuddy CLI."""
