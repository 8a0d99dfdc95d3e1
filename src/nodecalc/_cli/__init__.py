"""Command line interface for nodecalc."""
