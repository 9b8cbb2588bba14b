"""Adapters that bind the core ports to SQLite and Slack."""
