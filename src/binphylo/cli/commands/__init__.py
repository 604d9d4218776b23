"""Command implementations for the binphylo CLI."""
