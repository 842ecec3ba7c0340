"""Prompt templating and scene presets for staging requests."""
