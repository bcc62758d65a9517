"""Module entrypoint so `python -m bt_azure_tools` works."""

from __future__ import annotations

from bt_azure_tools.cli import app


def main() -> None:
    app(prog_name="bta")


if __name__ == "__main__":
    main()
