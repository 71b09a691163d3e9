from typing import List, NamedTuple, Optional, Sequence

from life2app_deployment.chain import Chain
from life2app_deployment.exceptions import MissingEndpoint
from life2app_deployment.ledger import Ledger
from life2app_deployment.plan import WiringEdge


class WiringResult(NamedTuple):
    edge: WiringEdge
    tx_hash: Optional[str]

    @property
    def changed(self) -> bool:
        return self.tx_hash is not None


def apply_wiring(edges: Sequence[WiringEdge], ledger: Ledger, chain: Chain) -> List[WiringResult]:
    """
    Applies every wiring edge against the ledger's addresses.

    Grants and revokes are idempotent on chain, so all edges are re-issued
    on every run; edges already in the requested state send no transaction.
    """
    chain_id = chain.chain_id
    for edge in edges:
        for endpoint in (edge.source, edge.target):
            if ledger.get(endpoint, chain_id) is None:
                raise MissingEndpoint(
                    f"cannot {edge.describe()}: '{endpoint}' is not deployed on chain {chain_id}",
                    contract_name=endpoint,
                )

    results = list()
    for edge in edges:
        source = ledger.get(edge.source, chain_id)
        target = ledger.get(edge.target, chain_id)
        tx_hash = chain.set_capability(
            target=target,
            grantee=source.address,
            capability=edge.capability,
            enabled=edge.enabled,
        )
        if tx_hash is None:
            print(f"(i) Wiring already applied: {edge.describe()}")
        else:
            print(f"(i) Wired: {edge.describe()} ({tx_hash})")
        results.append(WiringResult(edge=edge, tx_hash=tx_hash))
    return results
