import json
from unittest.mock import MagicMock

import pyarrow.parquet as pq
import pytest

from sync_parquet import cli


@pytest.fixture
def records_file(tmp_path):
    path = tmp_path / "contacts.json"
    path.write_text(json.dumps([
        {"id": 1, "name": "Ann", "created_at": "2024-01-15T10:00:00Z"},
        {"id": 2, "name": "Bob", "address": {"city": "LA"}},
    ]))
    return path


def test_load_json_lines(tmp_path):
    path = tmp_path / "deals.jsonl"
    path.write_text('{"id": 1}\n\n{"id": 2}\n')
    assert cli.load_records(str(path)) == [{"id": 1}, {"id": 2}]


def test_load_rejects_pretty_printed_object(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text('{\n  "records": []\n}')
    with pytest.raises(ValueError):
        cli.load_records(str(path))


def test_writes_local_files(records_file, tmp_path):
    out = tmp_path / "out"
    code = cli.main(["--input", str(records_file), "--object-type", "contacts", "--output-dir", str(out)])
    assert code == 0

    table = pq.read_table(str(out / "contacts.parquet"))
    assert table.column("address_city").to_pylist() == ["", "LA"]
    document = json.loads((out / "schema.json").read_text())
    assert document["object_type"] == "contacts"
    assert document["record_count"] == 2


def test_preview_prints_rows(records_file, capsys):
    assert cli.main(["--input", str(records_file), "--object-type", "contacts", "--preview", "1"]) == 0
    assert "Ann" in capsys.readouterr().out


def test_upload_to_bucket(records_file, bucket, monkeypatch):
    storage_client = MagicMock()
    storage_client.bucket.return_value = bucket
    monkeypatch.setattr(cli.storage, "Client", lambda: storage_client)

    code = cli.main([
        "--input", str(records_file), "--object-type", "contacts", "--bucket", "analytics",
        "--account-id", "a1", "--connection-id", "c1", "--sync-run-id", "r1",
    ])
    assert code == 0
    storage_client.bucket.assert_called_once_with("analytics")
    assert set(bucket.objects) == {"a1/c1/contacts/r1/chunk_000.parquet", "a1/c1/contacts/r1/schema.json"}


def test_bucket_requires_key_parts(records_file):
    with pytest.raises(SystemExit):
        cli.main(["--input", str(records_file), "--object-type", "contacts", "--bucket", "analytics"])


def test_unreadable_input(tmp_path):
    code = cli.main(["--input", str(tmp_path / "missing.json"), "--object-type", "x", "--preview", "1"])
    assert code == 2


def test_empty_input_writes_no_local_files(tmp_path):
    path = tmp_path / "empty.json"
    path.write_text("[]")
    out = tmp_path / "out"
    code = cli.main(["--input", str(path), "--object-type", "contacts", "--output-dir", str(out)])
    assert code == 0
    assert not (out / "contacts.parquet").exists()
    assert not (out / "schema.json").exists()
