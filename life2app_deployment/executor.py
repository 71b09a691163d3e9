from typing import Iterator, List, NamedTuple

from eth_typing import ChecksumAddress

from life2app_deployment.chain import Chain
from life2app_deployment.exceptions import (
    ArgumentDrift,
    ConfirmationTimeout,
    DeploymentReverted,
    ExecutorError,
    MissingContractCode,
    UnresolvedReference,
)
from life2app_deployment.ledger import Ledger, LedgerEntry, PendingDeployment
from life2app_deployment.plan import DeploymentStep, Plan
from life2app_deployment.utils import normalize_value
from life2app_deployment.wiring import WiringResult, apply_wiring


class StepResult(NamedTuple):
    index: int
    name: str
    address: ChecksumAddress
    was_skipped: bool
    recovered: bool = False


class DeploymentReport(NamedTuple):
    steps: List[StepResult]
    wiring: List[WiringResult]


def execute(plan: Plan, ledger: Ledger, chain: Chain) -> Iterator[StepResult]:
    """
    Walks the plan in order, lazily yielding one StepResult per step.

    Steps already in the ledger with identical arguments are skipped. The
    first failing step raises and no later step runs; every entry committed
    before it stays in the ledger so a re-run resumes where this one stopped.
    """
    for step in plan:
        try:
            yield _execute_step(step, ledger, chain)
        except ExecutorError as e:
            raise e.at_step(step.name, step.index)


def _execute_step(step: DeploymentStep, ledger: Ledger, chain: Chain) -> StepResult:
    contract = step.contract
    chain_id = chain.chain_id

    def lookup(name: str) -> ChecksumAddress:
        entry = ledger.get(name, chain_id)
        if entry is None:
            raise UnresolvedReference(f"'{name}' has no ledger entry on chain {chain_id}")
        return entry.address

    resolved_args = contract.resolve(lookup, chain.deployer)
    normalized_args = normalize_value(resolved_args)

    recovered = False
    entry = ledger.get(contract.name, chain_id)
    if entry is None:
        entry = _recover_pending(step, ledger, chain)
        recovered = entry is not None

    if entry is not None:
        if entry.proxy_kind != contract.proxy_kind:
            raise ArgumentDrift(
                f"deployed as '{entry.proxy_kind}' proxy, plan requests '{contract.proxy_kind}'"
            )
        if entry.initializer_args != normalized_args:
            raise ArgumentDrift(
                f"deployed with {entry.initializer_args}, plan resolves to {normalized_args}; "
                "upgrade explicitly instead of redeploying"
            )
        if not chain.has_code(entry.address):
            raise MissingContractCode(f"no code at recorded address {entry.address}")
        print(f"(i) [{step.index}] {contract.name} already deployed at {entry.address}; skipping")
        return StepResult(
            index=step.index,
            name=contract.name,
            address=entry.address,
            was_skipped=True,
            recovered=recovered,
        )

    chain.check_arguments(contract, resolved_args)
    nonce = chain.get_nonce()
    ledger.mark_pending(
        PendingDeployment(
            name=contract.name,
            chain_id=chain_id,
            deployer=chain.deployer,
            nonce=nonce,
            proxy_kind=contract.proxy_kind,
            contract_type=contract.contract_type,
            initializer_args=normalized_args,
        )
    )

    print(f"\n[{step.index}] Deploying {contract.name} ({contract.proxy_kind} proxy)...")
    try:
        receipt = chain.deploy(contract, resolved_args)
    except DeploymentReverted:
        # nothing landed at the predicted address; a timeout keeps the record instead
        ledger.clear_pending(contract.name, chain_id)
        raise

    entry = LedgerEntry(
        name=contract.name,
        chain_id=chain_id,
        network=chain.network,
        address=receipt.address,
        proxy_kind=contract.proxy_kind,
        contract_type=contract.contract_type,
        implementation=receipt.implementation,
        implementation_address=receipt.implementation_address,
        initializer_args=normalized_args,
        deployer=chain.deployer,
        tx_hash=receipt.tx_hash,
        block_number=receipt.block_number,
    )
    ledger.record(entry)
    print(f"(i) [{step.index}] {contract.name} deployed at {receipt.address}")
    return StepResult(
        index=step.index, name=contract.name, address=receipt.address, was_skipped=False
    )


def _recover_pending(step: DeploymentStep, ledger: Ledger, chain: Chain):
    """
    Reconciles a journal record left by an interrupted run with chain state.
    Returns the reconstructed entry, or None if the deployment never landed.
    """
    record = ledger.pending(step.name, chain.chain_id)
    if record is None:
        return None

    address = record.predicted_address
    if not chain.has_code(address):
        if record.deployer != chain.deployer or chain.get_nonce() <= record.last_nonce:
            # the journaled transaction may still be in the mempool
            raise ConfirmationTimeout(
                f"outcome of the deployment sent by {record.deployer} at nonce {record.nonce} "
                f"is unknown; wait for it to be mined or dropped, or remove the record from "
                f"{ledger.pending_filepath} if it was never broadcast"
            )
        print(f"(i) [{step.index}] Discarding journal record for {step.name}; nothing at {address}")
        ledger.clear_pending(step.name, chain.chain_id)
        return None

    implementation_address = (
        record.predicted_implementation_address if step.contract.is_proxied else address
    )
    entry = LedgerEntry(
        name=record.name,
        chain_id=record.chain_id,
        network=chain.network,
        address=address,
        proxy_kind=record.proxy_kind,
        contract_type=record.contract_type,
        implementation=chain.implementation_id(record.contract_type),
        implementation_address=implementation_address,
        initializer_args=record.initializer_args,
        deployer=record.deployer,
    )
    print(
        f"(!) [{step.index}] Recovered {step.name} at {address} from chain state "
        f"(deployer {record.deployer}, nonce {record.nonce})"
    )
    ledger.record(entry)
    return entry


def deploy_plan(plan: Plan, ledger: Ledger, chain: Chain) -> DeploymentReport:
    """Runs every step, then the wiring edges, while holding the ledger lock."""
    with ledger.lock():
        steps = list(execute(plan, ledger, chain))
        wiring = apply_wiring(plan.wiring, ledger, chain)
        entries = [ledger.get(name, chain.chain_id) for name in plan.contract_names]
        chain.finalize(entries)
    return DeploymentReport(steps=steps, wiring=wiring)
