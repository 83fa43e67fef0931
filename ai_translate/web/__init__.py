"""Web application package for ai-translate."""

from flask import Flask

from ai_translate.config import initialize_app


def create_app() -> Flask:
    """Application factory for the HTTP interface."""
    initialize_app()

    from .app import build_app  # Import here to avoid circular imports

    return build_app()


__all__ = ["create_app"]
