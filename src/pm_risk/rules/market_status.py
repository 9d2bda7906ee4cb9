from src.pm_common.errors import ContractNotFoundError, MarketResolvedError
from src.pm_market.domain.models import Contract


def check_market_tradable(contract: Contract | None, contract_id: str) -> Contract:
    """Return the contract if it exists and is not resolved."""
    if contract is None:
        raise ContractNotFoundError(contract_id)
    if contract.is_resolved:
        raise MarketResolvedError(contract_id)
    return contract
