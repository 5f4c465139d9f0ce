# tests/test_scripts.py
import json

import pytest

from mindbox_relay.models import QueueStatus
from mindbox_relay.scripts import queue as queue_script
from mindbox_relay.services.queue_service import AGENT_ENTRYPOINT


@pytest.fixture
def patched_integration(integration, mocker):
    mocker.patch.object(queue_script, "init_integration", return_value=integration)
    mocker.patch.object(queue_script, "shutdown_integration")
    mocker.patch.object(queue_script, "configure_logging")
    return integration


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        queue_script.build_parser().parse_args([])


def test_parser_worker_interval() -> None:
    args = queue_script.build_parser().parse_args(["worker", "--interval", "2.5"])

    assert args.command == "worker"
    assert args.interval == 2.5


def test_tick_prints_entry_point(patched_integration, make_queue_item, store, capsys) -> None:
    item_id = make_queue_item()

    assert queue_script.main(["tick"]) == 0

    assert capsys.readouterr().out.strip() == AGENT_ENTRYPOINT
    assert store.get(item_id).status is QueueStatus.SUCCESS
    queue_script.shutdown_integration.assert_called_once()


def test_stats_prints_counts(patched_integration, make_queue_item, capsys) -> None:
    make_queue_item(status=QueueStatus.FAILED)

    assert queue_script.main(["stats"]) == 0

    counts = json.loads(capsys.readouterr().out)
    assert counts["failed"] == 1
    assert counts["retry"] == 0


def test_init_db_creates_tables(mocker, capsys) -> None:
    create_tables = mocker.patch("mindbox_relay.db.session.create_tables")
    mocker.patch.object(queue_script, "configure_logging")

    assert queue_script.main(["init-db"]) == 0

    create_tables.assert_called_once_with()
    assert "tables created" in capsys.readouterr().out
