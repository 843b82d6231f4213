"""Command-line interface for iwmenu."""
