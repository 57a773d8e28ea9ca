"""
Recovery of signing keys from encrypted key files.
"""
import json
import logging
import os
from typing import Any, Dict, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .exceptions import KeyfileError

logger = logging.getLogger(__name__)


def load_keyfile(keyfile: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Parse a key file given as a dict, JSON text or a path to a JSON file.

    Raises:
        KeyfileError: If the key file cannot be read or parsed
    """
    if isinstance(keyfile, dict):
        return keyfile

    text = keyfile.strip()
    if not text.startswith("{") and os.path.isfile(text):
        try:
            with open(text, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise KeyfileError(f"Cannot read key file {keyfile}: {e}")

    try:
        data = json.loads(text)
    except ValueError as e:
        raise KeyfileError(f"Key file is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise KeyfileError(f"Key file must be a JSON object, got {type(data).__name__}")
    return data


def recover_account(keyfile: Union[str, Dict[str, Any]], password: str) -> LocalAccount:
    """
    Decrypt an encrypted key file into a signing account.

    Args:
        keyfile: Key file as a dict, JSON text or path
        password: Key file password

    Returns:
        LocalAccount able to sign transactions

    Raises:
        KeyfileError: If the key file is invalid or the password is wrong
    """
    data = load_keyfile(keyfile)
    try:
        private_key = Account.decrypt(data, password)
    except (ValueError, KeyError, TypeError) as e:
        raise KeyfileError(f"Failed to decrypt key file: {e}")
    account = Account.from_key(private_key)
    logger.debug(f"Recovered key for {account.address}")
    return account
