"""Core configuration, logging and HTTP client helpers."""
