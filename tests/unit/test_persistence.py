import numpy as np
import pytest

from digitscanner.core.matrix import Matrix
from digitscanner.core.network import FNN
from digitscanner.persistence import ModelFileError, load_network, save_network


def test_round_trip_preserves_parameters_and_outputs(tmp_path):
    net = FNN([6, 4, 3], seed=7)
    path = save_network(net, tmp_path / "models" / "net.txt")
    loaded = load_network(path)
    assert loaded.layers == [6, 4, 3]
    for a, b in zip(net.fully_connected_layers(), loaded.fully_connected_layers()):
        assert np.array_equal(a.W.to_array(), b.W.to_array())
        assert np.array_equal(a.B.to_array(), b.B.to_array())
    x = Matrix.from_array(np.linspace(0.0, 1.0, 6))
    assert np.array_equal(net.feedforward(x).to_array(), loaded.feedforward(x).to_array())


def test_file_layout(tmp_path):
    net = FNN([2, 1], initialize=False)
    net.set_parameters(
        0, Matrix.from_array(np.array([[0.5, -1.25]])), Matrix.from_array(np.array([[2.0]]))
    )
    text = save_network(net, tmp_path / "net.txt").read_text().split("\n")
    assert text[:4] == ["2", "2 1", "0.5 -1.25", "2"]


@pytest.mark.parametrize(
    "content, message",
    [
        ("", "end of file"),
        ("2\n3 x\n", "integer"),
        ("1\n3\n", "at least 2"),
        ("2\n2 1\n0.5 0.5\n", "end of file"),
        ("2\n2 1\n0.5 abc\n1\n", "invalid number"),
        ("2\n2 1\n0.5 0.5\n1\n7\n", "trailing"),
    ],
)
def test_malformed_files(tmp_path, content, message):
    path = tmp_path / "bad.txt"
    path.write_text(content)
    with pytest.raises(ModelFileError, match=message):
        load_network(path)


def test_missing_file(tmp_path):
    with pytest.raises(ModelFileError, match="not found"):
        load_network(tmp_path / "nope.txt")
