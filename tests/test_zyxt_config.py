from dataclasses import FrozenInstanceError

import pytest

from zyxt.zyxt_config import RunConfig, load_config
from zyxt.zyxt_log import dbg, get_verbosity, set_verbosity


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.delenv("ZYXT_DEBUG", raising=False)
    monkeypatch.chdir(tmp_path)
    level = get_verbosity()
    yield
    set_verbosity(level)


# --- Loading ---

def test_defaults_without_a_file():
    assert load_config() == RunConfig()


def test_default_file_in_working_directory(tmp_path):
    (tmp_path / "zyxt.yaml").write_text("verbosity: 2\nshow_stacktrace: false\n")
    config = load_config()
    assert config.verbosity == 2
    assert config.show_stacktrace is False
    assert config.defer_on_error is False


def test_explicit_path(tmp_path):
    path = tmp_path / "other.yaml"
    path.write_text("defer_on_error: true\nrecursion_limit: 5000\n")
    config = load_config(str(path))
    assert config.defer_on_error is True
    assert config.recursion_limit == 5000


def test_missing_explicit_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(str(path)) == RunConfig()


def test_unknown_keys(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("verbosity: 1\ncolour: red\n")
    with pytest.raises(ValueError, match="colour"):
        load_config(str(path))


def test_file_must_be_a_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(str(path))


def test_debug_env_raises_verbosity(monkeypatch):
    monkeypatch.setenv("ZYXT_DEBUG", "1")
    assert load_config().verbosity == 1


def test_debug_env_keeps_higher_verbosity(monkeypatch, tmp_path):
    monkeypatch.setenv("ZYXT_DEBUG", "1")
    (tmp_path / "zyxt.yaml").write_text("verbosity: 3\n")
    assert load_config().verbosity == 3


# --- Merging ---

def test_merged_ignores_none():
    config = RunConfig(verbosity=2)
    assert config.merged(verbosity=None) == config
    assert config.merged(verbosity=0, defer_on_error=True) == RunConfig(verbosity=0, defer_on_error=True)


def test_config_is_frozen():
    with pytest.raises(FrozenInstanceError):
        RunConfig().verbosity = 3


# --- Debug output ---

def test_dbg_respects_verbosity(capsys):
    set_verbosity(1)
    dbg(1, "shown", 42)
    dbg(2, "hidden")
    err = capsys.readouterr().err
    assert "[DBG] shown 42" in err
    assert "hidden" not in err


def test_negative_verbosity_clamps():
    set_verbosity(-3)
    assert get_verbosity() == 0
