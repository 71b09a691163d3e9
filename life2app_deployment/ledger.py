import json
import os
from collections import OrderedDict, defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from eth_typing import ChecksumAddress

from life2app_deployment.constants import LOCK_SUFFIX, NO_PROXY, PENDING_SUFFIX
from life2app_deployment.exceptions import CorruptLedger, LedgerLocked
from life2app_deployment.utils import _load_json, _write_json_atomically, contract_address

ChainId = int
ContractName = str


class LedgerEntry(NamedTuple):
    """Persisted record of one logical contract deployed on one network."""

    name: ContractName
    chain_id: ChainId
    network: str
    address: ChecksumAddress
    proxy_kind: str
    contract_type: str
    implementation: str
    implementation_address: ChecksumAddress
    initializer_args: List[Any]
    deployer: ChecksumAddress
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    revision: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = self._asdict()
        del data["name"]
        del data["chain_id"]
        return data

    @classmethod
    def from_dict(cls, name: ContractName, chain_id: ChainId, data: Dict) -> "LedgerEntry":
        try:
            return cls(name=name, chain_id=chain_id, **data)
        except TypeError as e:
            raise CorruptLedger(f"Malformed ledger entry: {e}", contract_name=name)


class PendingDeployment(NamedTuple):
    """
    Journal record written before a step submits transactions.

    The signer's nonce at submission time pins the CREATE addresses the
    deployment will occupy, which is how a crash between confirmation and
    the ledger write is detected on the next run.
    """

    name: ContractName
    chain_id: ChainId
    deployer: ChecksumAddress
    nonce: int
    proxy_kind: str
    contract_type: str
    initializer_args: List[Any]

    @property
    def last_nonce(self) -> int:
        # proxied kinds deploy the implementation first, then the proxy
        return self.nonce if self.proxy_kind == NO_PROXY else self.nonce + 1

    @property
    def predicted_implementation_address(self) -> ChecksumAddress:
        return contract_address(self.deployer, self.nonce)

    @property
    def predicted_address(self) -> ChecksumAddress:
        return contract_address(self.deployer, self.last_nonce)


class Ledger:
    """
    Durable mapping of chain id -> logical contract name -> LedgerEntry.

    Every mutation rewrites the whole document atomically; entries are
    replaced whole, never patched.
    """

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self.pending_filepath = self.filepath.with_suffix(PENDING_SUFFIX)
        self.lock_filepath = self.filepath.with_name(self.filepath.name + LOCK_SUFFIX)
        self._entries = self._read_entries()
        self._pending = self._read_pending()

    def _read_document(self, filepath: Path) -> Dict:
        if not filepath.exists():
            return dict()
        try:
            data = _load_json(filepath)
        except json.JSONDecodeError as e:
            raise CorruptLedger(f"Cannot parse {filepath}: {e}")
        if not isinstance(data, dict):
            raise CorruptLedger(f"Expected a mapping of networks in {filepath}")
        return data

    def _read_sections(self, filepath: Path) -> Iterator[Tuple[ChainId, Dict]]:
        for chain_id, section in self._read_document(filepath).items():
            try:
                chain_id = int(chain_id)
            except ValueError:
                raise CorruptLedger(f"Network key '{chain_id}' in {filepath} is not a chain id")
            if not isinstance(section, dict):
                raise CorruptLedger(
                    f"Expected a mapping of contracts for chain {chain_id} in {filepath}"
                )
            yield chain_id, section

    def _read_entries(self) -> Dict[ChainId, Dict[ContractName, LedgerEntry]]:
        entries = defaultdict(OrderedDict)
        for chain_id, contracts in self._read_sections(self.filepath):
            for name, data in contracts.items():
                entries[chain_id][name] = LedgerEntry.from_dict(name, chain_id, data)
        return entries

    def _read_pending(self) -> Dict[ChainId, Dict[ContractName, PendingDeployment]]:
        pending = defaultdict(OrderedDict)
        for chain_id, records in self._read_sections(self.pending_filepath):
            for name, data in records.items():
                try:
                    record = PendingDeployment(name=name, chain_id=chain_id, **data)
                except TypeError as e:
                    raise CorruptLedger(f"Malformed journal record: {e}", contract_name=name)
                pending[chain_id][name] = record
        return pending

    def reload(self) -> None:
        self._entries = self._read_entries()
        self._pending = self._read_pending()

    #
    # Entries
    #

    def get(self, name: ContractName, chain_id: ChainId) -> Optional[LedgerEntry]:
        return self._entries.get(chain_id, dict()).get(name)

    def entries(self, chain_id: ChainId) -> List[LedgerEntry]:
        return list(self._entries.get(chain_id, dict()).values())

    def record(self, entry: LedgerEntry) -> None:
        """Commits an entry, replacing any previous entry for the same name and network."""
        self._entries[entry.chain_id][entry.name] = entry
        self._write_entries()
        if self.pending(entry.name, entry.chain_id):
            self.clear_pending(entry.name, entry.chain_id)

    def _write_entries(self) -> None:
        data = OrderedDict()
        for chain_id in sorted(self._entries):
            contracts = self._entries[chain_id]
            if not contracts:
                continue
            data[str(chain_id)] = OrderedDict(
                (name, contracts[name].to_dict()) for name in sorted(contracts)
            )
        _write_json_atomically(data, self.filepath)

    #
    # Journal
    #

    def pending(self, name: ContractName, chain_id: ChainId) -> Optional[PendingDeployment]:
        return self._pending.get(chain_id, dict()).get(name)

    def pending_records(self, chain_id: ChainId) -> List[PendingDeployment]:
        return list(self._pending.get(chain_id, dict()).values())

    def mark_pending(self, record: PendingDeployment) -> None:
        self._pending[record.chain_id][record.name] = record
        self._write_pending()

    def clear_pending(self, name: ContractName, chain_id: ChainId) -> None:
        self._pending.get(chain_id, dict()).pop(name, None)
        self._write_pending()

    def _write_pending(self) -> None:
        data = OrderedDict()
        for chain_id in sorted(self._pending):
            records = self._pending[chain_id]
            if not records:
                continue
            data[str(chain_id)] = OrderedDict()
            for name in sorted(records):
                record = records[name]._asdict()
                del record["name"]
                del record["chain_id"]
                data[str(chain_id)][name] = record
        if data:
            _write_json_atomically(data, self.pending_filepath)
        elif self.pending_filepath.exists():
            self.pending_filepath.unlink()

    #
    # Advisory lock
    #

    @contextmanager
    def lock(self) -> Iterator["Ledger"]:
        """Holds an exclusive run marker next to the ledger file for the duration of a run."""
        self.lock_filepath.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.lock_filepath, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            holder = self.lock_filepath.read_text().strip() or "unknown"
            raise LedgerLocked(
                f"{self.filepath} is locked by process {holder}. "
                f"If no run is in progress, remove {self.lock_filepath}."
            )
        try:
            os.write(fd, f"{os.getpid()}\n".encode())
        finally:
            os.close(fd)

        try:
            # pick up anything committed by the previous lock holder
            self.reload()
            yield self
        finally:
            self.lock_filepath.unlink()
