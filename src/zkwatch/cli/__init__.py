"""Command line interface for zkwatch."""
