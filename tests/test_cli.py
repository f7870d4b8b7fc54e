import json
import pytest
from main import parse_arguments, run


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "notes.md").write_text("Alpha beta gamma", encoding="utf-8")
    return tmp_path


def invoke(workspace, *argv):
    args = parse_arguments(["--db", str(workspace / "store.db"), *argv])
    return run(args)


def test_save_and_list(workspace, capsys):
    document = str(workspace / "notes.md")

    assert invoke(workspace, "save-document", document) == 0
    assert invoke(workspace, "list", document) == 0

    output = capsys.readouterr().out
    assert document in output


def test_import_then_export_document(workspace, capsys):
    document = str(workspace / "notes.md")
    package = workspace / "incoming.json"
    package.write_text(json.dumps({
        "version": "1.0",
        "exported_at": 1,
        "annotations": [
            {"text": "Alpha", "anchor_data": "[]", "user_name": "carol"},
            {"text": "gamma", "anchor_data": "[]"},
        ],
    }), encoding="utf-8")

    assert invoke(workspace, "save-document", document) == 0
    assert invoke(workspace, "import", str(package), document) == 0
    assert "Imported 2 annotation(s)" in capsys.readouterr().out

    exported = workspace / "exported.json"
    assert invoke(workspace, "export-document", document, "-o", str(exported)) == 0

    data = json.loads(exported.read_text(encoding="utf-8"))
    assert data["source_document"]["name"] == "notes.md"
    assert sorted(a["text"] for a in data["annotations"]) == ["Alpha", "gamma"]


def test_errors_become_exit_status(workspace, capsys):
    package = workspace / "future.json"
    package.write_text(json.dumps({"version": "2.0", "exported_at": 1, "annotations": []}), encoding="utf-8")

    assert invoke(workspace, "import", str(package), str(workspace / "notes.md")) == 1
    assert "Unsupported package version" in capsys.readouterr().out

    assert invoke(workspace, "export", "no-such-id", str(workspace / "notes.md")) == 1


def test_migrate_command(workspace, capsys):
    (workspace / "notes.md.ann").write_text(json.dumps([{"text": "beta", "anchor": []}]), encoding="utf-8")

    assert invoke(workspace, "migrate", str(workspace)) == 0
    assert "1 annotations migrated, 0 errors" in capsys.readouterr().out


def test_command_is_required():
    with pytest.raises(SystemExit):
        parse_arguments([])
