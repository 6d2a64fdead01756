"""Command-line interface for ScriptIntel."""
