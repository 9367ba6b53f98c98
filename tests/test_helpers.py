import logging

import pytest

from utils.helpers import DEFAULT_CONFIG, load_config, setup_logging, write_text


def test_load_config_merges_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("pca:\n  use_correlation: false\noutput:\n  dpi: 72\n")

    config = load_config(str(path))

    assert config["pca"]["use_correlation"] is False
    assert config["pca"]["hulls"] is True
    assert config["output"]["dpi"] == 72
    assert config["dfa"] == DEFAULT_CONFIG["dfa"]
    assert DEFAULT_CONFIG["pca"]["use_correlation"] is True


def test_empty_config_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(str(path)) == DEFAULT_CONFIG


def test_config_must_be_a_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- pca\n- dfa\n")

    with pytest.raises(ValueError, match="mapping"):
        load_config(str(path))


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_write_text_creates_directories(tmp_path):
    path = tmp_path / "reports" / "pca.txt"

    write_text(str(path), "PC1 explains most of the variance")

    assert path.read_text() == "PC1 explains most of the variance\n"


def test_setup_logging_quiets_libraries(tmp_path):
    log_file = tmp_path / "logs" / "run.log"

    setup_logging(logging.DEBUG, log_file=str(log_file))
    logging.getLogger("skulls").debug("hello")

    assert logging.getLogger("matplotlib").level == logging.WARNING
    assert logging.getLogger().level == logging.DEBUG
    assert "hello" in log_file.read_text()
