import logging

import numpy as np
import pytest

from mcfs.utils import (
    parse_criteria_list, plot_training_history, read_text_ratings, timed,
    write_text_ratings
)


def test_read_text_ratings_with_header(tmp_path):
    path = tmp_path / "ratings.txt"
    path.write_text("# ASCII\n# 2\n0 1 3.5 4\n2 0 1 2\n")
    record = read_text_ratings(path, precision=['FLOAT', 'INT'], minv=[1, 1], maxv=[5, 5])
    assert record['criteria_size'] == 2
    assert record['num_users'] == 3
    assert record['num_items'] == 2
    assert record['ratings'][0] == {'user': 0, 'item': 1, 'scores': [3.5, 4.0]}
    assert record['precision'] == ['FLOAT', 'INT']
    assert record['maxv'] == [5, 5]


def test_read_text_ratings_without_header(tmp_path):
    path = tmp_path / "ratings.txt"
    path.write_text("0 0 1\n1 1 2\n")
    record = read_text_ratings(path)
    assert record['criteria_size'] == 1
    assert 'minv' not in record


def test_read_text_ratings_header_mismatch(tmp_path):
    path = tmp_path / "ratings.txt"
    path.write_text("# 3\n0 0 1 2\n")
    with pytest.raises(ValueError):
        read_text_ratings(path)


def test_read_text_ratings_unknown_format(tmp_path):
    path = tmp_path / "ratings.txt"
    path.write_text("# BINARY\n")
    with pytest.raises(ValueError, match="Bad format"):
        read_text_ratings(path)


def test_read_text_ratings_empty_file(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("")
    record = read_text_ratings(path)
    assert record['ratings'] == []
    assert record['num_users'] == 0


def test_read_text_ratings_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_text_ratings(tmp_path / "missing.txt")


def test_write_text_ratings(tmp_path):
    path = tmp_path / "out.txt"
    write_text_ratings(path, np.array([0, 3]), np.array([2, 1]),
                       np.array([[1.0, 2.5], [3.0, 4.0]]))
    lines = path.read_text().splitlines()
    assert lines[:2] == ["# ASCII", "# 2"]
    assert lines[2] == "0 2 1.000000 2.500000"


def test_parse_criteria_list():
    assert parse_criteria_list("1 1,13") == [1.0, 1.0, 13.0]
    assert parse_criteria_list("INT FLOAT", cast=str) == ['INT', 'FLOAT']
    assert parse_criteria_list("") is None


def test_timed_logs_elapsed_seconds(caplog):
    with caplog.at_level(logging.INFO):
        with timed("Work seconds: "):
            pass
    assert "Work seconds: " in caplog.text


def test_plot_training_history(tmp_path):
    history = [
        {'iter': 0, 'loss': 2.0, 'train_rmse': 1.5, 'valid_rmse': 1.6},
        {'iter': 1, 'loss': 1.0, 'train_rmse': 1.2, 'valid_rmse': 1.4},
    ]
    path = tmp_path / "curves.png"
    plot_training_history(history, path)
    assert path.exists()
