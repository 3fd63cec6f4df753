import pytest

from stackanalyzer import analyzer_config
from stackanalyzer import frames


@pytest.fixture
def config_file(monkeypatch, tmp_path):
    path = tmp_path / "stackbaron.yaml"
    monkeypatch.setenv("STACKBARON_CONFIG", str(path))
    return path


def test_defaults():
    assert analyzer_config.load_config() == {}
    assert analyzer_config.max_line_length() == analyzer_config.DEFAULT_MAX_LINE_LENGTH
    assert analyzer_config.similarity() == "any_pointer"
    assert analyzer_config.server_host() == "localhost"
    assert analyzer_config.server_port() == 5555
    band = analyzer_config.pointer_band()
    assert band.floor == frames.DEFAULT_POINTER_FLOOR
    assert band.ceiling == frames.DEFAULT_POINTER_CEILING


def test_config_file(config_file):
    config_file.write_text("similarity: exact_lines\n"
                           "max_line_length: 1024\n"
                           "pointer_floor: 0x1000\n"
                           "server_port: 8080\n")
    assert analyzer_config.similarity() == "exact_lines"
    assert analyzer_config.max_line_length() == 1024
    assert analyzer_config.pointer_band().floor == 0x1000
    assert analyzer_config.server_port() == 8080


def test_env_overrides_file(config_file, monkeypatch):
    config_file.write_text("server_port: 8080\n")
    monkeypatch.setenv("SERVER_PORT", "9090")
    assert analyzer_config.server_port() == 9090


def test_empty_file(config_file):
    config_file.write_text("")
    assert analyzer_config.load_config() == {}


def test_not_a_mapping(config_file):
    config_file.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        analyzer_config.load_config()


def test_invalid_values(monkeypatch):
    monkeypatch.setenv("STACKBARON_MAX_LINE_LENGTH", "lots")
    with pytest.raises(ValueError):
        analyzer_config.max_line_length()
    monkeypatch.setenv("STACKBARON_MAX_LINE_LENGTH", "0")
    with pytest.raises(ValueError):
        analyzer_config.max_line_length()
    monkeypatch.setenv("STACKBARON_POINTER_FLOOR", str(frames.DEFAULT_POINTER_CEILING))
    with pytest.raises(ValueError):
        analyzer_config.pointer_band()
