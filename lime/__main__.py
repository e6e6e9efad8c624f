"""Entry point for python -m lime execution.

This module allows running LIME as a module:
    python -m lime --db naver_line_backup.db chats
    python -m lime --help
"""

from lime.cli import run

if __name__ == "__main__":
    run()
