"""Command line interface for todoshare."""
