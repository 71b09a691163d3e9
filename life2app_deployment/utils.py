import json
import os
from pathlib import Path
from typing import Any, Union

import rlp
import yaml
from eth_typing import ChecksumAddress
from eth_utils import is_address, keccak, to_bytes, to_checksum_address, to_hex

from life2app_deployment.exceptions import ConfigurationError

STANDARD_LEDGER_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    try:
        with open(filepath, "r") as file:
            return yaml.safe_load(file) or dict()
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed YAML in {filepath}: {e}")


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def _write_json_atomically(data: Any, filepath: Path) -> Path:
    """
    Writes JSON to a sibling temp file and swaps it into place, so a crash
    mid-write leaves the previous document intact.
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    temp_filepath = filepath.with_suffix(".temp.json")
    with open(temp_filepath, "w") as file:
        json.dump(data, file, **STANDARD_LEDGER_JSON_FORMAT)
        file.write("\n")
        file.flush()
        os.fsync(file.fileno())
    os.replace(temp_filepath, filepath)
    return filepath


def normalize_value(value: Any) -> Any:
    """
    Converts a resolved argument into its canonical JSON form; addresses are
    checksummed and bytes are hex encoded so that ledger comparisons are exact.
    """
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    if isinstance(value, str) and len(value) == 42 and is_address(value):
        return to_checksum_address(value)
    return value


def contract_address(sender: Union[str, ChecksumAddress], nonce: int) -> ChecksumAddress:
    """Returns the CREATE address for a contract deployed by sender at nonce."""
    encoded = rlp.encode([to_bytes(hexstr=sender), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def bytecode_identifier(bytecode: Union[bytes, str]) -> str:
    """Content hash identifying an implementation build."""
    if isinstance(bytecode, str):
        bytecode = to_bytes(hexstr=bytecode)
    return to_hex(keccak(bytecode))
