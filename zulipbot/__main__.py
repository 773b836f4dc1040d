"""Entry point for `python -m zulipbot`."""

from zulipbot.cli.commands import app

if __name__ == "__main__":
    app()
