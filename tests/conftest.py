"""
Pytest configuration and shared fixtures for all tests
"""

import os
import sys
import pandas as pd
import pytest
from sqlalchemy import create_engine

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from stock_allocation.waterfall.currency import ExchangeRateTable
from stock_allocation.waterfall.models import DemandLine


def _build_line(line_id, item_code='ITEM-A', ordered=10, dispatched=0, allocated=0,
                promised='2025-10-25', document='2025-10-01', **kwargs):
    return DemandLine(
        line_id=line_id,
        item_code=item_code,
        quantity_ordered=float(ordered),
        quantity_dispatched=float(dispatched),
        quantity_allocated=float(allocated),
        promised_date=pd.Timestamp(promised) if promised is not None else None,
        document_date=pd.Timestamp(document) if document is not None else None,
        **kwargs
    )


@pytest.fixture
def make_line():
    """Factory for DemandLine records with sensible defaults"""
    return _build_line


@pytest.fixture
def waterfall_scenario(make_line):
    """
    100 units of ITEM-A against three lines needing 60, 50 and 30,
    promised on consecutive days so ranks are 1, 2, 3
    """
    lines = [
        make_line(3, ordered=30, promised='2025-10-27'),
        make_line(1, ordered=60, promised='2025-10-25'),
        make_line(2, ordered=50, promised='2025-10-26'),
    ]
    return lines, {'ITEM-A': 100}


@pytest.fixture
def rate_table():
    """GBP reporting, EUR reference: 1 EUR = 0.85 GBP, 1 EUR = 1.10 USD"""
    return ExchangeRateTable(
        reporting_currency='GBP',
        reference_currency='EUR',
        direct_rates={},
        base_rates={'GBP': 0.85, 'EUR': 1.0, 'USD': 1.10},
        reference_to_reporting=0.85,
    )


@pytest.fixture
def demand_frame():
    """Raw demand rows as the snapshot table holds them"""
    return pd.DataFrame({
        'line_id': [101, 102, 103, 104, 105, 106, 107],
        'line_number': [1, 2, 1, 1, 1, 2, 1],
        'document_no': ['SO-1', 'SO-1', 'SO-2', 'SO-3', 'SO-4', 'SO-4', 'SO-5'],
        'customer_document_no': ['PO-11', 'PO-11', 'PO-12', 'PO-13', 'PO-14', 'PO-14', 'PO-15'],
        'customer_code': ['C1', 'C1', 'C2', 'C3', 'C4', 'C4', 'C5'],
        'customer_name': ['Acme', 'Acme', 'Bolt', 'Crane', 'Delta', 'Delta', 'Echo'],
        'item_code': ['ITEM-A', 'ITEM-B', 'ITEM-A', 'ITEM-A', 'ITEM-B', 'ITEM-A', 'ITEM-A'],
        'item_description': ['Widget', 'Gadget', 'Widget', 'Widget', 'Gadget', 'Widget', 'Widget'],
        'line_total_value': [600.0, 80.0, 550.0, 360.0, 50.0, 15.0, 16.0],
        'source_document_no': ['Q-1', 'Q-1', 'Q-2', None, None, None, None],
        'requested_date': ['2025-10-20', '2025-10-18', '2025-10-22', '2025-10-25',
                           '2025-10-19', '2025-10-20', '2025-10-28'],
        'quantity_ordered': [60, 20, 50, 30, 10, 5, 8],
        'quantity_dispatched': [0, 0, 0, 0, 10, 0, 0],
        'quantity_allocated': [0, 5, 0, 0, 0, 0, 0],
        'unit_price': [10.0, 4.0, 11.0, 12.0, 5.0, 3.0, 2.0],
        'currency_id': ['GBP', 'EUR', 'USD', 'GBP', 'GBP', 'GBP', 'GBP'],
        'system_rate': [0.85, 1.0, 1.10, 0.85, 0.85, 0.85, 0.85],
        'exchange_rate': [1.0, 1.18, 1.29, 1.0, 1.0, 1.0, 1.0],
        'document_date': ['2025-10-01', '2025-10-02', '2025-10-01', '2025-10-03',
                          '2025-10-01', '2025-10-01', '2025-10-01'],
        'promised_date': ['2025-10-25', '2025-10-20', '2025-10-26', '2025-10-27',
                          '2025-10-21', 'not-a-date', '2025-10-30'],
        'line_type_id': [0, 0, 0, 0, 0, 0, 3],
        'document_type_id': [0, 0, 0, 0, 0, 0, 0],
        'document_status_id': [0, 0, 0, 0, 0, 0, 0],
    })


@pytest.fixture
def movements_frame():
    """Stock movement balances: opening and issued stock per item"""
    return pd.DataFrame({
        'item_code': ['ITEM-A', 'ITEM-A', 'ITEM-B', 'ITEM-C'],
        'opening_stock_level': [80, 40, 10, 5],
        'stock_level_issued': [15, 5, 0, 9],
    })


@pytest.fixture
def rates_frame():
    """System rates: local units per one EUR"""
    return pd.DataFrame({
        'currency_id': ['GBP', 'EUR', 'USD'],
        'one_unit_base_equals': [0.85, 1.0, 1.10],
        'direct_rate': [None, None, None],
    })


@pytest.fixture
def snapshot_engine(tmp_path, demand_frame, movements_frame, rates_frame):
    """SQLite database holding one materialised snapshot"""
    engine = create_engine(f"sqlite:///{tmp_path / 'snapshot.db'}")
    demand_frame.to_sql('demand_line_snapshot', engine, index=False)
    movements_frame.to_sql('stock_movement_balance', engine, index=False)
    rates_frame.to_sql('currency_rate', engine, index=False)
    yield engine
    engine.dispose()
