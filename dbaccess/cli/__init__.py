"""Command line interface for dbaccess."""
