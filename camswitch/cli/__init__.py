"""Command-line interface for camswitch."""
