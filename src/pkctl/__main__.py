"""pkctl package entry point."""

from pkctl.cli import app

if __name__ == "__main__":
    app()
