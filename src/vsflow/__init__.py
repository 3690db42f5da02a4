"""vsflow package entrypoint."""


def main() -> None:
    """Run the vsflow CLI."""
    # imported here so `python -m vsflow.worker.app` does not load the CLI first
    from vsflow.cli.app import main as _cli_main

    _cli_main()
