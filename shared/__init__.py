"""Shared utilities for the flow compiler: logging, configuration and persistence."""
