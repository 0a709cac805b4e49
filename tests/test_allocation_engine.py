import random
from dataclasses import replace

import pandas as pd
import pytest

from stock_allocation.waterfall import AllocationIntegrityError, StockAllocationEngine, run_allocation
from stock_allocation.waterfall.currency import ExchangeRateTable


def _random_demand(make_line, seed, n_lines=60, items=('A', 'B', 'C', 'D')):
    rng = random.Random(seed)
    lines = []
    for line_id in range(1, n_lines + 1):
        ordered = rng.randint(1, 40)
        lines.append(make_line(
            line_id,
            item_code=rng.choice(items),
            ordered=ordered,
            dispatched=rng.randint(0, ordered - 1),
            allocated=rng.choice([0, 0, 0, rng.randint(1, 5)]),
            promised=f'2025-11-{rng.randint(1, 5):02d}',
            document=f'2025-10-{rng.randint(1, 3):02d}',
        ))
    stock = {item: rng.choice([0, 15, 60, 500, -10]) for item in items}
    return lines, stock


def test_scenario_end_to_end(waterfall_scenario):
    lines, stock = waterfall_scenario

    run = run_allocation(lines, stock, max_workers=1)
    df = run.to_dataframe()

    assert df['line_id'].tolist() == [1, 2, 3]
    assert df['priority_rank'].tolist() == [1, 2, 3]
    assert df['proposed_allocation'].tolist() == [60, 40, 0]
    assert df['stock_remaining_before_this_line'].tolist() == [100, 40, -10]
    assert df['proposed_status'].tolist() == [
        'Would be Fully Allocated', 'Would be Partially Allocated', 'Would Remain Unallocated'
    ]
    assert df['current_status'].tolist() == ['Not Allocated'] * 3


def test_output_carries_contract_columns(waterfall_scenario):
    lines, stock = waterfall_scenario

    df = run_allocation(lines, stock).to_dataframe()

    for col in ['line_id', 'item_code', 'priority_rank', 'proposed_allocation',
                'stock_remaining_before_this_line', 'current_status', 'proposed_status',
                'unit_price_reporting', 'outstanding_value_reporting', 'net_value_system_fx']:
        assert col in df.columns


@pytest.mark.parametrize('seed', [1, 2, 3, 4, 5])
def test_conservation_and_saturation(make_line, seed):
    lines, stock = _random_demand(make_line, seed)

    df = run_allocation(lines, stock).to_dataframe()

    for item_code, pool in df.groupby('item_code'):
        available = max(stock.get(item_code, 0), 0)
        allocated = pool['proposed_allocation'].sum()
        eligible = pool['eligible_quantity'].sum()
        assert allocated <= available + 1e-9
        if eligible >= available:
            assert allocated == pytest.approx(available)
        else:
            assert allocated == pytest.approx(eligible)


@pytest.mark.parametrize('seed', [11, 12, 13])
def test_everything_after_partial_line_gets_zero(make_line, seed):
    lines, stock = _random_demand(make_line, seed)

    df = run_allocation(lines, stock).to_dataframe()

    for _, pool in df.groupby('item_code'):
        pool = pool.sort_values('priority_rank')
        starved = False
        for row in pool.itertuples():
            if starved:
                assert row.proposed_allocation == 0
            if row.proposed_allocation < row.eligible_quantity:
                starved = True


@pytest.mark.parametrize('seed', [21, 22])
def test_reserved_lines_never_allocated(make_line, seed):
    lines, stock = _random_demand(make_line, seed)

    df = run_allocation(lines, stock).to_dataframe()
    reserved = df[df['quantity_allocated'] > 0]

    assert not reserved.empty
    assert (reserved['proposed_allocation'] == 0).all()


def test_identical_snapshot_gives_identical_results(make_line):
    lines, stock = _random_demand(make_line, 99)
    shuffled = list(lines)
    random.Random(7).shuffle(shuffled)

    first = run_allocation(lines, stock).to_dataframe()
    second = run_allocation(shuffled, stock).to_dataframe()

    cols = ['line_id', 'item_code', 'priority_rank', 'proposed_allocation']
    pd.testing.assert_frame_equal(first[cols], second[cols])


def test_parallel_run_matches_sequential(make_line):
    lines, stock = _random_demand(make_line, 5, n_lines=200, items=tuple('ABCDEFGH'))

    sequential = run_allocation(lines, stock, max_workers=1).to_dataframe()
    parallel = run_allocation(lines, stock, max_workers=4).to_dataframe()

    pd.testing.assert_frame_equal(sequential, parallel)


def test_missing_stock_position_yields_zero_pool(make_line):
    lines = [make_line(1, item_code='NOSTOCK'), make_line(2, item_code='STOCKED')]

    df = run_allocation(lines, {'STOCKED': 100}).to_dataframe().set_index('line_id')

    assert df.loc[1, 'proposed_allocation'] == 0
    assert df.loc[2, 'proposed_allocation'] == 10


def test_duplicate_line_id_aborts_run(make_line):
    lines = [make_line(1), make_line(1, item_code='OTHER')]

    with pytest.raises(AllocationIntegrityError):
        run_allocation(lines, {'ITEM-A': 10, 'OTHER': 10})


def test_malformed_lines_are_screened_not_fatal(make_line):
    lines = [make_line(1), make_line(2, promised=None), make_line(3, ordered=5, dispatched=5)]

    run = run_allocation(lines, {'ITEM-A': 100})

    assert [r.line_id for r in run.results] == [1]
    assert sorted(entry['line_id'] for entry in run.rejected) == [2, 3]


def test_unparseable_date_excludes_line_not_run(make_line):
    lines = [
        make_line(1, ordered=30),
        replace(make_line(2, ordered=30), promised_date='not-a-date'),
        replace(make_line(3, ordered=30), document_date='2025-13-45'),
    ]

    run = run_allocation(lines, {'ITEM-A': 100})

    assert [r.line_id for r in run.results] == [1]
    assert run.results[0].proposed_allocation == 30
    assert {entry['line_id']: entry['reason'] for entry in run.rejected} == {
        2: 'Malformed promised date',
        3: 'Malformed document date',
    }


def test_mixed_line_id_types_and_timezones_in_one_pool(make_line):
    lines = [
        make_line('X-2', ordered=30),
        make_line(1, ordered=30),
        replace(make_line(7, ordered=30), promised_date=pd.Timestamp('2025-10-24 23:00', tz='UTC')),
    ]

    run = run_allocation(lines, {'ITEM-A': 70})

    df = run.to_dataframe()
    assert df['line_id'].tolist() == [7, 1, 'X-2']
    assert df['proposed_allocation'].tolist() == [30, 30, 10]


def test_empty_demand_returns_empty_run():
    run = run_allocation([], {'ITEM-A': 10})

    assert run.results == []
    assert run.to_dataframe().empty
    assert run.summary_frame().empty


def test_summary_frame_totals(waterfall_scenario):
    lines, stock = waterfall_scenario

    summary = run_allocation(lines, stock).summary_frame()

    row = summary.iloc[0]
    assert row['item_code'] == 'ITEM-A'
    assert row['line_count'] == 3
    assert row['proposed_allocation'] == 100
    assert row['fully_served'] == 1
    assert row['partially_served'] == 1
    assert row['unserved'] == 1
    assert row['stock_left'] == 0


def test_engine_uses_supplied_rates(make_line):
    rates = ExchangeRateTable(reporting_currency='EUR', reference_currency='EUR',
                              base_rates={'GBP': 0.85}, reference_to_reporting=1.0)
    line = make_line(1, unit_price=8.5, currency_id='GBP', exchange_rate=0.85)

    run = StockAllocationEngine(rates=rates, max_workers=1).run([line], {'ITEM-A': 10})

    assert run.results[0].unit_price_system_fx == pytest.approx(10.0)
    assert run.results[0].unit_price_reporting == pytest.approx(10.0)
