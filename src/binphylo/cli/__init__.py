"""Command line interface for binphylo."""
