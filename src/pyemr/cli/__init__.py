"""Command-line interface for pyEMR."""
