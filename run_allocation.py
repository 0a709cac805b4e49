#!/usr/bin/env python
"""
Stock Allocation - Batch Entry Point
Loads the current snapshot, runs the waterfall allocation and logs a summary
"""
import sys
import logging
import argparse

from stock_allocation.config import config
from stock_allocation.waterfall import AllocationSnapshotData, StockAllocationEngine
from stock_allocation.waterfall.formatters import format_run_summary

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    """Run one allocation over the current snapshot"""
    parser = argparse.ArgumentParser(description='Run the priority-ranked stock allocation')
    parser.add_argument('--item', '-i', action='append', dest='items',
                        help='Allocate only this item code (repeatable)')
    parser.add_argument('--workers', '-w', type=int,
                        help='Number of pools processed in parallel')
    parser.add_argument('--show-rows', action='store_true',
                        help='Print the allocation rows after the summary')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args(argv)

    # Configure logging
    level_name = 'DEBUG' if args.verbose else config.get_app_setting('LOG_LEVEL', 'INFO')
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger.info("Starting stock allocation run...")
    logger.info(f"Item filter: {', '.join(args.items) if args.items else 'All items'}")

    try:
        data = AllocationSnapshotData()
        demand = data.get_demand_lines(args.items)
        stock = data.get_stock_positions()
        rates = data.get_exchange_rates()

        engine = StockAllocationEngine(rates=rates, max_workers=args.workers)
        run = engine.run(demand, stock)

        logger.info(format_run_summary(run.summary_frame(), currency=engine.rates.reporting_currency))
        if run.rejected:
            logger.info(engine.validator.generate_rejection_summary(run.rejected))

        if args.show_rows:
            print(run.to_dataframe().to_string(index=False))

        return 0

    except Exception as e:
        logger.exception(f"Error running stock allocation: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
