"""Allow running tend as `python -m tend`."""

from tend.cli.app import app

if __name__ == "__main__":
    app()
