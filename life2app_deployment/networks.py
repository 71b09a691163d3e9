import os
import typing
from pathlib import Path
from typing import Dict, Mapping, NamedTuple, Optional

from life2app_deployment.constants import (
    DERIVATION_SEED,
    EXTERNAL_SIGNER,
    LOCAL_CHAIN_IDS,
    NETWORKS_FILEPATH,
    STATIC_KEY,
    SUPPORTED_SIGNER_SOURCES,
)
from life2app_deployment.exceptions import NetworkConfigError
from life2app_deployment.utils import _load_yaml


class SignerSource(NamedTuple):
    """How the deployer account is obtained; secrets are only ever named, never stored."""

    type: str
    key_env: Optional[str] = None
    mnemonic_env: Optional[str] = None
    index: int = 0
    alias: Optional[str] = None

    @property
    def secret_env(self) -> Optional[str]:
        if self.type == STATIC_KEY:
            return self.key_env
        if self.type == DERIVATION_SEED:
            return self.mnemonic_env
        return None

    def secret(self, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
        environ = os.environ if environ is None else environ
        if self.secret_env is None:
            return None
        return environ.get(self.secret_env)


class NetworkProfile(NamedTuple):
    name: str
    rpc_endpoint_url: str
    chain_id: int
    signer_source: Optional[SignerSource] = None
    local: bool = False

    @property
    def is_live(self) -> bool:
        return not self.local


def _signer_source_from_config(profile_name: str, config: typing.Any) -> Optional[SignerSource]:
    if config is None:
        return None
    if isinstance(config, str):
        config = {"type": config}
    if not isinstance(config, dict):
        raise NetworkConfigError(f"Malformed signer_source for network '{profile_name}'.")

    source_type = config.get("type")
    if source_type not in SUPPORTED_SIGNER_SOURCES:
        raise NetworkConfigError(
            f"Network '{profile_name}' signer_source type '{source_type}' "
            f"is not one of {SUPPORTED_SIGNER_SOURCES}."
        )
    source = SignerSource(
        type=source_type,
        key_env=config.get("key_env"),
        mnemonic_env=config.get("mnemonic_env"),
        index=int(config.get("index", 0)),
        alias=config.get("alias"),
    )
    if source.type in (STATIC_KEY, DERIVATION_SEED) and not source.secret_env:
        field = "key_env" if source.type == STATIC_KEY else "mnemonic_env"
        raise NetworkConfigError(
            f"Network '{profile_name}' uses a {source.type} signer but '{field}' is not set."
        )
    return source


def _profile_from_config(
    name: str, config: typing.Dict, environ: Mapping[str, str]
) -> NetworkProfile:
    if not isinstance(config, dict):
        raise NetworkConfigError(f"Malformed configuration for network '{name}'.")

    rpc_endpoint_url = config.get("rpc_endpoint_url")
    override_env = config.get("rpc_endpoint_url_env")
    if override_env and environ.get(override_env):
        rpc_endpoint_url = environ[override_env]
    if not rpc_endpoint_url:
        raise NetworkConfigError(f"rpc_endpoint_url is not set for network '{name}'.")

    chain_id = config.get("chain_id")
    if chain_id is None:
        raise NetworkConfigError(f"chain_id is not set for network '{name}'.")
    chain_id = int(chain_id)

    return NetworkProfile(
        name=name,
        rpc_endpoint_url=str(rpc_endpoint_url),
        chain_id=chain_id,
        signer_source=_signer_source_from_config(name, config.get("signer_source")),
        local=bool(config.get("local", chain_id in LOCAL_CHAIN_IDS)),
    )


def load_network_profiles(
    filepath: Path = NETWORKS_FILEPATH, environ: Optional[Mapping[str, str]] = None
) -> Dict[str, NetworkProfile]:
    environ = os.environ if environ is None else environ
    config = _load_yaml(filepath)
    networks = config.get("networks")
    if not networks:
        raise NetworkConfigError(f"No networks defined in {filepath}.")
    return {name: _profile_from_config(name, data, environ) for name, data in networks.items()}


def resolve_network_profile(
    name: str,
    filepath: Path = NETWORKS_FILEPATH,
    environ: Optional[Mapping[str, str]] = None,
) -> NetworkProfile:
    """
    Maps a named environment to its RPC endpoint, chain id and signer source.

    A live network without a signer source, or whose signer secret is absent
    from the environment, is rejected here rather than at signing time.
    """
    environ = os.environ if environ is None else environ
    profiles = load_network_profiles(filepath=filepath, environ=environ)
    try:
        profile = profiles[name]
    except KeyError:
        raise NetworkConfigError(
            f"Unknown network profile '{name}'; expected one of {sorted(profiles)}."
        )

    source = profile.signer_source
    if source is None:
        if profile.is_live:
            raise NetworkConfigError(
                f"Network '{name}' is a live network but has no signer_source configured."
            )
        return profile

    if source.type != EXTERNAL_SIGNER and not source.secret(environ):
        raise NetworkConfigError(
            f"Network '{name}' expects its signer secret in ${source.secret_env}, which is not set."
        )
    return profile
