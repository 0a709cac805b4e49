import run_allocation
from stock_allocation.waterfall.allocation_data import AllocationSnapshotData


def test_main_runs_snapshot(monkeypatch, snapshot_engine, capsys):
    monkeypatch.setattr(run_allocation, 'AllocationSnapshotData',
                        lambda: AllocationSnapshotData(engine=snapshot_engine))

    exit_code = run_allocation.main(['--show-rows', '--workers', '2'])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert 'ITEM-A' in out
    assert 'Would be Partially Allocated' in out


def test_main_item_filter(monkeypatch, snapshot_engine, capsys):
    monkeypatch.setattr(run_allocation, 'AllocationSnapshotData',
                        lambda: AllocationSnapshotData(engine=snapshot_engine))

    exit_code = run_allocation.main(['--item', 'ITEM-B', '--show-rows'])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert 'ITEM-B' in out
    assert 'ITEM-A' not in out


def test_main_reports_failure(monkeypatch):
    def broken():
        raise ValueError("Missing required database configuration")

    monkeypatch.setattr(run_allocation, 'AllocationSnapshotData', broken)

    assert run_allocation.main([]) == 1
