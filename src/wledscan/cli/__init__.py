"""Command line interface for wledscan."""
