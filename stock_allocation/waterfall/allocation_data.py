"""
Allocation Snapshot Data Repository
===================================
Reads the materialised snapshot the engine runs on:
- Demand data (live sales-order stock lines with quantity still due)
- Stock positions (opening stock minus issued stock, per item)
- Exchange rates (system rates per currency)

Also converts pandas DataFrames with the same columns into engine records,
so callers that already hold the data can skip the database.

Read-only: nothing is ever written back to the source tables.
"""
import logging
import math
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import text
from sqlalchemy.engine import Engine

from ..config import config
from ..db import get_db_engine
from .currency import ExchangeRateTable
from .models import DemandLine, DocumentStatus, DocumentType, LineType, StockPosition

logger = logging.getLogger(__name__)

DATE_COLUMNS = ['promised_date', 'document_date', 'requested_date']
OPTIONAL_TEXT_COLUMNS = [
    'document_no', 'customer_code', 'customer_name', 'customer_document_no',
    'item_description', 'source_document_no'
]


# ==================== FRAME CONVERSION ====================

def filter_open_sales_lines(df: pd.DataFrame) -> pd.DataFrame:
    """Keep live sales-order stock lines with quantity still due"""
    if df.empty:
        return df

    mask = pd.Series(True, index=df.index)
    if 'document_status_id' in df.columns:
        mask &= df['document_status_id'] == DocumentStatus.LIVE
    if 'line_type_id' in df.columns:
        mask &= df['line_type_id'] == LineType.STOCK_ITEM
    if 'document_type_id' in df.columns:
        mask &= df['document_type_id'] == DocumentType.SALES_ORDER
    mask &= (df['quantity_ordered'] - df['quantity_dispatched'].fillna(0)) > 0

    dropped = int((~mask).sum())
    if dropped:
        logger.info(f"Filtered out {dropped} closed, non-stock or fully despatched lines")
    return df[mask]


def _none_if_missing(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    return value


def demand_lines_from_frame(df: pd.DataFrame, apply_filters: bool = True) -> List[DemandLine]:
    """
    Build DemandLine records from a DataFrame

    Required columns: line_id, item_code, quantity_ordered, quantity_dispatched,
    quantity_allocated, promised_date, document_date. Everything else is optional.
    Unparseable dates become None and the line is later screened out.
    """
    if df is None or df.empty:
        return []

    df = df.copy()
    for col in DATE_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors='coerce')

    for col in ['quantity_ordered', 'quantity_dispatched', 'quantity_allocated',
                'unit_price', 'line_total_value', 'exchange_rate', 'system_rate']:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors='coerce')

    # Missing dispatched / allocated quantities mean nothing shipped or reserved yet
    df['quantity_dispatched'] = df['quantity_dispatched'].fillna(0)
    df['quantity_allocated'] = df['quantity_allocated'].fillna(0)

    if apply_filters:
        df = filter_open_sales_lines(df)

    lines = []
    for record in df.to_dict('records'):
        record = {key: _none_if_missing(value) for key, value in record.items()}
        line_number = record.get('line_number')
        lines.append(DemandLine(
            line_id=record['line_id'],
            item_code=str(record['item_code']) if record.get('item_code') is not None else '',
            quantity_ordered=record['quantity_ordered'],
            quantity_dispatched=float(record['quantity_dispatched']),
            quantity_allocated=float(record['quantity_allocated']),
            promised_date=record.get('promised_date'),
            document_date=record.get('document_date'),
            unit_price=float(record.get('unit_price') or 0.0),
            currency_id=str(record.get('currency_id') or config.get_app_setting('REPORTING_CURRENCY', 'GBP')).upper(),
            exchange_rate=record.get('exchange_rate'),
            document_no=record.get('document_no'),
            line_number=int(line_number) if line_number is not None else None,
            customer_code=record.get('customer_code'),
            customer_name=record.get('customer_name'),
            customer_document_no=record.get('customer_document_no'),
            item_description=record.get('item_description'),
            requested_date=record.get('requested_date'),
            line_total_value=record.get('line_total_value'),
            system_rate=record.get('system_rate'),
            source_document_no=record.get('source_document_no'),
        ))
    return lines


def stock_positions_from_frame(df: pd.DataFrame) -> List[StockPosition]:
    """
    Build StockPosition records from a DataFrame

    Accepts either an 'available_quantity' column, or movement balances with
    'opening_stock_level' and 'stock_level_issued' that are summed per item.
    """
    if df is None or df.empty:
        return []

    if 'available_quantity' not in df.columns:
        df = summarize_stock_movements(df)

    duplicated = df['item_code'].duplicated(keep=False)
    if duplicated.any():
        logger.warning(f"Merging {int(duplicated.sum())} duplicate stock rows by item code")
        df = df.groupby('item_code', as_index=False)['available_quantity'].sum()

    return [
        StockPosition(item_code=str(row['item_code']), available_quantity=float(row['available_quantity']))
        for row in df.to_dict('records')
        if not pd.isna(row['available_quantity'])
    ]


def summarize_stock_movements(df: pd.DataFrame) -> pd.DataFrame:
    """Current stock per item = sum(opening) - sum(issued)"""
    if df.empty:
        return pd.DataFrame(columns=['item_code', 'available_quantity'])

    grouped = df.groupby('item_code', as_index=False).agg(
        opening=('opening_stock_level', 'sum'),
        issued=('stock_level_issued', 'sum'),
    )
    grouped['available_quantity'] = grouped['opening'] - grouped['issued']
    return grouped[['item_code', 'available_quantity']]


def exchange_rates_from_frame(df: pd.DataFrame,
                              reporting_currency: Optional[str] = None,
                              reference_currency: Optional[str] = None) -> ExchangeRateTable:
    """
    Build the rate table from currency rows

    Columns: currency_id, one_unit_base_equals (local units per reference unit),
    optional direct_rate (local -> reporting multiplier). The reporting currency's
    own one_unit_base_equals is the reference -> reporting rate.
    """
    reporting = (reporting_currency or config.get_app_setting('REPORTING_CURRENCY', 'GBP')).upper()
    reference = (reference_currency or config.get_app_setting('REFERENCE_CURRENCY', 'EUR')).upper()

    if df is None or df.empty:
        return ExchangeRateTable(reporting_currency=reporting, reference_currency=reference)

    base_rates: Dict[str, float] = {}
    direct_rates: Dict[str, float] = {}
    for row in df.to_dict('records'):
        currency = str(row['currency_id']).upper()
        base = _none_if_missing(row.get('one_unit_base_equals'))
        if base is not None:
            base_rates[currency] = float(base)
        direct = _none_if_missing(row.get('direct_rate'))
        if direct is not None:
            direct_rates[currency] = float(direct)

    reference_to_reporting = base_rates.get(reporting)
    if reference_to_reporting is None:
        logger.warning(f"No {reference} -> {reporting} system rate; cross-currency values will be 0")

    return ExchangeRateTable(
        reporting_currency=reporting,
        reference_currency=reference,
        direct_rates=direct_rates,
        base_rates=base_rates,
        reference_to_reporting=reference_to_reporting,
    )


# ==================== REPOSITORY ====================

class AllocationSnapshotData:
    """Repository for the allocation snapshot"""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine if engine is not None else get_db_engine()

    def _read(self, query: str, params: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
        with self.engine.connect() as conn:
            return pd.read_sql(text(query), conn, params=params or {})

    # ==================== DEMAND DATA ====================

    def get_demand_frame(self, item_codes: Optional[List[str]] = None) -> pd.DataFrame:
        """Get outstanding live sales-order stock lines"""
        params = {
            'live': int(DocumentStatus.LIVE),
            'stock_item': int(LineType.STOCK_ITEM),
            'sales_order': int(DocumentType.SALES_ORDER),
        }
        item_clause = ""
        if item_codes:
            placeholders = ', '.join([f':item_{i}' for i in range(len(item_codes))])
            params.update({f'item_{i}': code for i, code in enumerate(item_codes)})
            item_clause = f"AND d.item_code IN ({placeholders})"

        query = f"""
            SELECT
                d.line_id,
                d.line_number,
                d.document_no,
                d.customer_document_no,
                d.customer_code,
                d.customer_name,
                d.item_code,
                d.item_description,
                d.quantity_ordered,
                COALESCE(d.quantity_dispatched, 0) AS quantity_dispatched,
                COALESCE(d.quantity_allocated, 0) AS quantity_allocated,
                d.unit_price,
                d.line_total_value,
                d.currency_id,
                d.system_rate,
                d.exchange_rate,
                d.document_date,
                d.requested_date,
                d.promised_date,
                d.source_document_no
            FROM demand_line_snapshot d
            WHERE d.document_status_id = :live
              AND d.line_type_id = :stock_item
              AND d.document_type_id = :sales_order
              AND (d.quantity_ordered - COALESCE(d.quantity_dispatched, 0)) > 0
              {item_clause}
            ORDER BY d.item_code, d.line_id
        """

        try:
            df = self._read(query, params)
        except Exception as e:
            logger.error(f"Error loading demand lines: {e}")
            raise

        logger.info(f"Loaded {len(df)} outstanding demand lines")
        return df

    def get_demand_lines(self, item_codes: Optional[List[str]] = None) -> List[DemandLine]:
        return demand_lines_from_frame(self.get_demand_frame(item_codes), apply_filters=False)

    # ==================== STOCK DATA ====================

    def get_stock_frame(self) -> pd.DataFrame:
        """Get current stock per item (opening minus issued)"""
        query = """
            SELECT
                item_code,
                SUM(opening_stock_level) - SUM(stock_level_issued) AS available_quantity
            FROM stock_movement_balance
            GROUP BY item_code
        """

        try:
            df = self._read(query)
        except Exception as e:
            logger.error(f"Error loading stock positions: {e}")
            raise

        logger.info(f"Loaded stock positions for {len(df)} items")
        return df

    def get_stock_positions(self) -> List[StockPosition]:
        return stock_positions_from_frame(self.get_stock_frame())

    # ==================== EXCHANGE RATES ====================

    def get_exchange_rates(self) -> ExchangeRateTable:
        """Get system exchange rates"""
        query = """
            SELECT currency_id, one_unit_base_equals, direct_rate
            FROM currency_rate
        """

        try:
            df = self._read(query)
        except Exception as e:
            logger.error(f"Error loading exchange rates: {e}")
            raise

        return exchange_rates_from_frame(df)
