"""Shared fixtures: small contract tables loaded into a ContractStore."""

import pandas as pd
import pytest

from farol.data_loader import ContractStore

DEFAULT_OBJECT = (
    "Contratação de empresa especializada para manutenção preventiva "
    "e corretiva das unidades escolares"
)


def _contract(
    contract_id,
    value=1000.0,
    category="TI",
    supplier_id="s1",
    agency_id="a1",
    signature_date="2024-03-05",
    start_date=None,
    end_date=None,
    publication_date=None,
    object=DEFAULT_OBJECT,
    created_at=None,
    supplier_name=None,
    agency_name=None,
):
    return {
        "id": contract_id,
        "external_id": f"ext-{contract_id}",
        "object": object,
        "value": value,
        "category": category,
        "supplier_id": supplier_id,
        "supplier_name": supplier_name,
        "agency_id": agency_id,
        "agency_name": agency_name,
        "signature_date": signature_date,
        "start_date": start_date,
        "end_date": end_date,
        "publication_date": publication_date,
        "created_at": created_at,
    }


@pytest.fixture
def make_contract():
    """Factory for one contract row (dict)."""
    return _contract


@pytest.fixture
def make_store():
    """Factory building a ContractStore from lists of row dicts."""
    def _make(contracts, amendments=None, scores=None):
        amendments_df = pd.DataFrame(amendments) if amendments is not None else None
        return ContractStore(pd.DataFrame(contracts), amendments_df, scores)
    return _make


@pytest.fixture
def ti_store(make_store, make_contract):
    """
    Six TI contracts signed in 2024 plus one OUTROS contract.

    c6 is worth 10x the others: mean 250, population std dev ~335.4,
    so c6 sits ~2.24 std devs above the mean.
    """
    contracts = [
        make_contract(f"c{i}", value=100.0, created_at=f"2024-01-0{i}")
        for i in range(1, 6)
    ]
    contracts.append(make_contract("c6", value=1000.0, created_at="2024-01-06"))
    contracts.append(make_contract("o1", value=500.0, category="OUTROS", created_at="2024-01-07"))
    return make_store(contracts)
