import json

from app.ops.integrity_scan import main, run_scan
from tests.evstock_helpers import create_network, create_stock


def test_integrity_scan_no_findings(db_session, capsys):
    network = create_network(db_session)
    create_stock(db_session, network.central, network.part, in_stock=3)

    database_url = str(db_session.get_bind().url)
    exit_code = run_scan(str(network.company.id), "json", True, database_url=database_url)
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert exit_code == 0
    assert payload["summary"]["critical"] == 0
    assert payload["findings"] == []


def test_integrity_scan_critical_exit(db_session, capsys):
    network = create_network(db_session)
    create_stock(db_session, network.central, network.part, in_stock=3, reserved=1)

    database_url = str(db_session.get_bind().url)
    exit_code = main(["--company", "all", "--format", "json", "--fail-on-critical", "--database-url", database_url])
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert exit_code == 1
    assert payload["summary"]["critical"] >= 1
    assert payload["summary"]["by_check"]["reserved_matches_reservations"] >= 1


def test_integrity_scan_text_report(db_session, capsys):
    network = create_network(db_session)
    create_stock(db_session, network.central, network.part, in_stock=3, reserved=1)

    database_url = str(db_session.get_bind().url)
    exit_code = run_scan(str(network.company.id), "text", False, database_url=database_url)
    output = capsys.readouterr().out
    assert exit_code == 0
    assert output.startswith("Stock Integrity Scan Report")
    assert "reserved_matches_reservations" in output
