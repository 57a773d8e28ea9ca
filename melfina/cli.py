"""Command-line interface for Melfina."""
import json
import logging
import sys
from typing import Optional

import click
from dotenv import find_dotenv, load_dotenv
from eth_account import Account

from .config import DEFAULT_HOST, DEFAULT_PORT, NotaryConfig
from .contract import ContractInterface
from .engine import SubmissionEngine
from .exceptions import ConfigurationError, MelfinaError
from .ledger.memory import InMemoryLedger
from .notary import Notary
from .version import __version__

logger = logging.getLogger(__name__)

LEVEL_COLORS = {
    "DEBUG": "blue",
    "INFO": "white",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red",
}


def should_use_color() -> bool:
    """Colour log labels only when writing to a terminal."""
    return sys.stdout.isatty()


class LevelColorFormatter(logging.Formatter):
    """Formatter printing `date [LEVEL] message` with a coloured level."""

    def __init__(self, use_color: bool = True):
        super().__init__("%(asctime)s [%(levelname)s] %(message)s", datefmt="%m/%d/%Y %H:%M:%S")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)
        original = record.levelname
        record.levelname = click.style(original, fg=LEVEL_COLORS.get(original, "white"))
        try:
            return super().format(record)
        finally:
            record.levelname = original


def configure_logging(debug: bool = False) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LevelColorFormatter(use_color=should_use_color()))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def _load_notary(require_contract: bool = True) -> Notary:
    config = NotaryConfig.from_env()
    if require_contract and not config.contract_address:
        raise ConfigurationError("CONTRACT_ADDRESS environment variable must be set")
    return Notary.from_config(config)


def _in_memory_notary() -> Notary:
    contract = ContractInterface(
        ContractInterface.default_abi(),
        address="0x" + "42" * 20
    )
    ledger = InMemoryLedger(contract)
    engine = SubmissionEngine(ledger, contract, Account.create())
    return Notary(engine)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.version_option(__version__, prog_name="melfina")
def cli(debug: bool) -> None:
    """Record and check SHA-256 digests of text on an Ethereum ledger."""
    load_dotenv(find_dotenv(usecwd=True))
    configure_logging(debug)


@cli.command()
def deploy() -> None:
    """Deploy the contract from CONTRACT_BIN and print its address."""
    try:
        notary = _load_notary(require_contract=False)
        address = notary.deploy()
    except Exception as e:
        raise click.ClickException(str(e))
    click.echo(address)


@cli.command()
@click.option("--host", default=None, help=f"Bind address [default: MELFINA_HOST or {DEFAULT_HOST}].")
@click.option("--port", type=int, default=None, help=f"Port [default: MELFINA_PORT or {DEFAULT_PORT}].")
@click.option("--in-memory", is_flag=True, help="Serve against a throwaway in-memory ledger.")
def serve(host: Optional[str], port: Optional[int], in_memory: bool) -> None:
    """Start the HTTP server."""
    import uvicorn

    from .server import create_app

    static_dir = None
    try:
        if in_memory:
            notary = _in_memory_notary()
        else:
            config = NotaryConfig.from_env()
            if not config.contract_address:
                raise ConfigurationError("CONTRACT_ADDRESS environment variable must be set")
            notary = Notary.from_config(config)
            host = host or config.host
            port = port or config.port
            static_dir = config.static_dir
    except MelfinaError as e:
        raise click.ClickException(str(e))

    host = host or DEFAULT_HOST
    port = port or DEFAULT_PORT
    logger.info(f"Server running on port {port}")
    uvicorn.run(create_app(notary, static_dir=static_dir), host=host, port=port, log_config=None)


@cli.command()
@click.argument("value")
def notarize(value: str) -> None:
    """Record the digest of VALUE and print the transaction hash."""
    try:
        tx_hash = _load_notary().store(value)
    except Exception as e:
        raise click.ClickException(str(e))
    click.echo(tx_hash)


@cli.command()
@click.argument("value")
def verify(value: str) -> None:
    """Check whether the digest of VALUE was recorded."""
    try:
        result = _load_notary().check(value)
    except Exception as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(result.model_dump(by_alias=True)))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
