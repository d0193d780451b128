import json
import logging
import sys

import pytest

import atom


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_single_build_from_command_line(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "index.html").write_text('<div class="flex p-4"></div>')
    monkeypatch.setattr(sys, "argv", ["atom.py", "-b", "--format", "compressed", "-o", "dist/app.css", "."])
    atom.main()
    assert (tmp_path / "dist" / "app.css").read_text() == ".p-4{padding:4px}.flex{display:flex}"


def test_config_flag_creates_starter_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "index.html").write_text('<div class="my-button"></div>')
    monkeypatch.setattr(sys, "argv", ["atom.py", "-b", "-c", "--format", "compressed"])
    atom.main()
    assert json.loads((tmp_path / "atom-config.json").read_text())["output_file"] == "style.css"
    assert (tmp_path / "style.css").read_text().startswith(".my-button{background-color:blue;")


def test_invalid_config_exits(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "atom-config.json").write_text(json.dumps({"write_mode": "appendDelta", "rebuild_on_start": False}))
    monkeypatch.setattr(sys, "argv", ["atom.py", "-b", "-c"])
    with pytest.raises(SystemExit) as info:
        atom.main()
    assert info.value.code == 1
