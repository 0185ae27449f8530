"""Entrypoint for `python -m TexelBrew`."""
import logging

logger = logging.getLogger("texel_io")


def _run_cli():
    from .cli import main as cli_main
    logger.debug("Dispatching to CLI entrypoint.")
    cli_main()


if __name__ == "__main__":
    _run_cli()
