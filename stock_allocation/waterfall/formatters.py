"""
Formatting utilities for allocation run summaries
"""
import pandas as pd
from typing import Union


def format_number(value: Union[int, float, None], decimals: int = 0) -> str:
    """
    Format number with thousand separator

    Args:
        value: Number to format
        decimals: Number of decimal places

    Returns:
        Formatted string
    """
    try:
        if value is None or pd.isna(value):
            return "-"

        if decimals == 0:
            return f"{int(round(value)):,}"
        else:
            return f"{float(value):,.{decimals}f}"

    except (ValueError, TypeError):
        return "-"


def format_currency(value: Union[int, float, None], currency: str = "GBP", decimals: int = 2) -> str:
    """Format a reporting-currency amount"""
    formatted = format_number(value, decimals)
    if formatted == "-":
        return formatted
    return f"{formatted} {currency}"


def format_run_summary(summary_df: pd.DataFrame, max_items: int = 20, currency: str = "GBP") -> str:
    """Human-readable per-item summary of an allocation run"""
    if summary_df is None or summary_df.empty:
        return "No allocation pools in this run"

    lines = [f"📦 {len(summary_df)} item(s) allocated"]
    for row in summary_df.head(max_items).to_dict('records'):
        lines.append(
            f"  • {row['item_code']}: {format_number(row['proposed_allocation'], 2)} of "
            f"{format_number(row['available_quantity'], 2)} available to "
            f"{int(row['fully_served'])} full / {int(row['partially_served'])} partial, "
            f"{int(row['unserved'])} unserved "
            f"({format_currency(row.get('proposed_value_reporting'), currency)})"
        )
    if len(summary_df) > max_items:
        lines.append(f"  ... and {len(summary_df) - max_items} more")

    if 'proposed_value_reporting' in summary_df.columns:
        total = summary_df['proposed_value_reporting'].sum()
        lines.append(f"Total proposed value: {format_currency(total, currency)}")
    return "\n".join(lines)
