"""
Environment configuration for Melfina.
"""
import logging
import os
import urllib.parse
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from .engine import DEFAULT_GAS_LIMIT, DEFAULT_GAS_PRICE
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("ETH_ADDRESS", "ETH_KEYFILE", "ETH_PASSWORD", "ETH_PROVIDER")

DEFAULT_PROVIDER = "http://localhost:8545"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 1337


def validate_rpc_url(url: str, name: str = "ETH_PROVIDER", allow_insecure: bool = False) -> str:
    """
    Require https:// for remote endpoints.

    With allow_insecure set, plain http is accepted for any host (e.g. a
    node on a private network) and only logged.

    Raises:
        ConfigurationError: If a non-local URL does not use https
    """
    parsed = urllib.parse.urlparse(url)
    host = parsed.hostname or ''
    is_local = host in ('localhost', '127.0.0.1')
    if parsed.scheme != 'https' and not is_local:
        if allow_insecure:
            logger.warning(f"{name} does not use https: {parsed.scheme}://{host}")
            return url
        raise ConfigurationError(f"{name} must use https:// for security (got: {parsed.scheme}://)")
    return url


def _bool_env(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _int_env(environ: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    value = environ.get(name)
    if not value:
        return default
    try:
        return int(value, 0)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer (got: {value!r})")


class NotaryConfig(BaseModel):
    """Settings needed to sign and submit notarization transactions"""
    model_config = ConfigDict(frozen=True)

    address: str
    keyfile: str
    password: str
    provider: str = DEFAULT_PROVIDER
    contract_address: Optional[str] = None
    abi_path: Optional[str] = None
    bytecode_path: Optional[str] = None
    chain_id: Optional[int] = None
    gas_limit: int = DEFAULT_GAS_LIMIT
    gas_price: int = DEFAULT_GAS_PRICE
    max_retries: Optional[int] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    static_dir: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "NotaryConfig":
        """
        Build the configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigurationError: Listing every missing required variable at once
        """
        env = os.environ if environ is None else environ

        missing = [key for key in REQUIRED_ENV_VARS if not env.get(key)]
        if missing:
            raise ConfigurationError(
                f"{', '.join(missing)} environment variables must be set",
                missing=missing
            )

        return cls(
            address=env["ETH_ADDRESS"],
            keyfile=env["ETH_KEYFILE"],
            password=env["ETH_PASSWORD"],
            provider=validate_rpc_url(
                env["ETH_PROVIDER"],
                allow_insecure=_bool_env(env, "ETH_ALLOW_INSECURE_PROVIDER")
            ),
            contract_address=env.get("CONTRACT_ADDRESS") or None,
            abi_path=env.get("CONTRACT_ABI") or None,
            bytecode_path=env.get("CONTRACT_BIN") or None,
            chain_id=_int_env(env, "ETH_CHAIN_ID", None),
            gas_limit=_int_env(env, "ETH_GAS_LIMIT", DEFAULT_GAS_LIMIT),
            gas_price=_int_env(env, "ETH_GAS_PRICE", DEFAULT_GAS_PRICE),
            max_retries=_int_env(env, "MELFINA_MAX_RETRIES", None),
            host=env.get("MELFINA_HOST") or DEFAULT_HOST,
            port=_int_env(env, "MELFINA_PORT", DEFAULT_PORT),
            static_dir=env.get("MELFINA_STATIC_DIR") or None
        )

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks
        return (
            f"NotaryConfig(address={self.address!r}, provider={self.provider!r}, "
            f"contract_address={self.contract_address!r})"
        )

    __str__ = __repr__
