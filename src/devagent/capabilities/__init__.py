"""Lazily-loaded capability modules. Each exposes ``create_tools()``."""
