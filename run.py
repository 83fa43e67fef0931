"""Project root entry point for launching the HTTP service."""

from __future__ import annotations

import os

from ai_translate.web import create_app


def main():
    app = create_app()
    port = int(os.environ.get("AI_TRANSLATE_PORT") or 5500)
    app.run(host="0.0.0.0", port=port, debug=False)


if __name__ == "__main__":
    main()
