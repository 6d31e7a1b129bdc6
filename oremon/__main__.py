"""Allow ``python -m oremon``."""

from oremon.cli import app

if __name__ == "__main__":
    app(prog_name="oremon")
