"""Command line interface for screenrelay."""
