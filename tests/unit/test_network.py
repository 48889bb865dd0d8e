import math

import numpy as np
import pytest

from digitscanner.core.matrix import Matrix, ShapeError
from digitscanner.core.network import FNN, make_batches
from digitscanner.data.encoding import one_hot
from digitscanner.training.losses import cross_entropy


def _column(values) -> Matrix:
    return Matrix.from_array(np.asarray(values, dtype=np.float64))


def _samples(n: int, n_in: int, n_out: int, seed: int = 0):
    rng = np.random.default_rng(seed)
    inputs = [_column(rng.uniform(0.0, 1.0, n_in)) for _ in range(n)]
    targets = [one_hot(int(k), n_out) for k in rng.integers(0, n_out, n)]
    return inputs, targets


def _parameters(net: FNN):
    return [(layer.W.to_array(), layer.B.to_array()) for layer in net.fully_connected_layers()]


def test_layer_structure():
    net = FNN([4, 3, 2], seed=0)
    assert net.layers == [4, 3, 2]
    assert net.nb_fully_connected_layers == 2
    assert net.input_layer.nb_nodes == 4
    second = net.fully_connected_layer(1)
    assert second.W.shape == (2, 3)
    assert second.B.shape == (2, 1)
    assert net.previous_layer(second) is net.fully_connected_layer(0)
    assert net.parameter_count() == 3 * 5 + 2 * 4


@pytest.mark.parametrize("layers", [[5], [3, 0, 2], []])
def test_invalid_layer_lists(layers):
    with pytest.raises(ValueError):
        FNN(layers)


def test_get_weights_returns_a_view():
    net = FNN([2, 2], seed=0)
    view = net.fully_connected_layer(0).get_weights()
    view[0, 0] = 42.0
    assert net.fully_connected_layer(0).W[0, 0] == 42.0
    view.free()
    assert not net.fully_connected_layer(0).W.is_freed


def test_known_parameters_feedforward():
    net = FNN([3, 2], initialize=False)
    net.set_parameters(
        0,
        _column([[0.1, 0.2, 0.3], [-0.4, 0.5, -0.6]]),
        _column([[0.05], [-0.05]]),
    )
    out = net.feedforward(_column([1.0, 0.0, 1.0]))
    expected = [1.0 / (1.0 + math.exp(-0.45)), 1.0 / (1.0 + math.exp(1.05))]
    assert out.shape == (2, 1)
    assert out[0, 0] == pytest.approx(expected[0], abs=1e-9)
    assert out[1, 0] == pytest.approx(expected[1], abs=1e-9)


def test_random_init_is_seeded_and_scaled():
    a = FNN([400, 50, 10], seed=3)
    b = FNN([400, 50, 10], seed=3)
    for (wa, ba), (wb, bb) in zip(_parameters(a), _parameters(b)):
        assert np.array_equal(wa, wb)
        assert np.array_equal(ba, bb)
    weights = a.fully_connected_layer(0).W.to_array()
    assert weights.std() == pytest.approx(1.0 / math.sqrt(400), rel=0.1)


def test_feedforward_output_range_and_idempotence():
    net = FNN([6, 5, 3], seed=1)
    x = _column(np.linspace(0.0, 1.0, 6))
    first = net.feedforward(x)
    second = net.feedforward(x)
    assert first.shape == (3, 1)
    assert np.all((first.to_array() > 0.0) & (first.to_array() < 1.0))
    assert np.array_equal(first.to_array(), second.to_array())
    assert not x.is_freed


def test_feedforward_rejects_wrong_input_shape():
    net = FNN([3, 2], seed=0)
    with pytest.raises(ShapeError):
        net.feedforward(Matrix(4, 1))
    with pytest.raises(ShapeError):
        net.feedforward(Matrix(3, 2))


def test_trace_has_one_activation_per_layer():
    net = FNN([4, 3, 3, 2], seed=2)
    x = _column([0.1, 0.2, 0.3, 0.4])
    trace = net.feedforward_with_trace(x)
    assert len(trace) == net.nb_fully_connected_layers + 1
    assert trace[0] is not x
    assert np.array_equal(trace[0].to_array(), x.to_array())
    assert [a.I for a in trace] == [4, 3, 3, 2]
    assert np.array_equal(trace[-1].to_array(), net.feedforward(x).to_array())


def test_gradient_shapes_match_parameters():
    net = FNN([5, 4, 3], seed=0)
    inputs, targets = _samples(1, 5, 3)
    grads = net.backpropagation(inputs[0], targets[0])
    for layer, nw, nb in zip(net.fully_connected_layers(), grads.nabla_W, grads.nabla_B):
        assert nw.shape == layer.W.shape
        assert nb.shape == layer.B.shape


def test_backpropagation_matches_finite_differences():
    net = FNN([4, 3, 2], seed=5)
    inputs, targets = _samples(1, 4, 2, seed=9)
    x, y = inputs[0], targets[0]
    grads = net.backpropagation(x, y)
    eps = 1e-6

    def cost() -> float:
        out = net.feedforward(x)
        return cross_entropy(out, y)

    for index, layer in enumerate(net.fully_connected_layers()):
        for param, analytic in ((layer.W, grads.nabla_W[index]), (layer.B, grads.nabla_B[index])):
            for r in range(param.I):
                for c in range(param.J):
                    original = param[r, c]
                    param[r, c] = original + eps
                    plus = cost()
                    param[r, c] = original - eps
                    minus = cost()
                    param[r, c] = original
                    numeric = (plus - minus) / (2 * eps)
                    assert analytic[r, c] == pytest.approx(numeric, rel=1e-4, abs=1e-7)


def test_single_layer_update_by_hand():
    w, b = 0.3, -0.2
    net = FNN([1, 1], initialize=False)
    net.set_parameters(0, _column([[w]]), _column([[b]]))
    a = 1.0 / (1.0 + math.exp(-(w + b)))
    net.sgd_batch([_column([1.0])], [_column([1.0])], training_set_len=4, batch_len=1, eta=0.5, alpha=2.0)
    layer = net.fully_connected_layer(0)
    assert layer.W[0, 0] == pytest.approx(0.75 * w - 0.5 * (a - 1.0), abs=1e-12)
    assert layer.B[0, 0] == pytest.approx(b - 0.5 * (a - 1.0), abs=1e-12)


def test_sgd_batch_averages_over_the_batch():
    net = FNN([1, 1], initialize=False)
    net.set_parameters(0, _column([[0.0]]), _column([[0.0]]))
    # a = 0.5 for every input; the two gradients are (0.5-1)*1 and (0.5-0)*3.
    xs = [_column([1.0]), _column([3.0])]
    ys = [_column([1.0]), _column([0.0])]
    net.sgd_batch(xs, ys, training_set_len=2, batch_len=2, eta=1.0, alpha=0.0)
    assert net.fully_connected_layer(0).W[0, 0] == pytest.approx(-(-0.5 + 1.5) / 2)
    assert net.fully_connected_layer(0).B[0, 0] == pytest.approx(0.0)


def test_serial_and_threaded_batches_agree():
    inputs, targets = _samples(7, 5, 3, seed=4)
    serial = FNN([5, 4, 3], seed=11)
    with FNN([5, 4, 3], seed=11, max_threads=4) as threaded:
        for net in (serial, threaded):
            net.sgd_batch(inputs, targets, training_set_len=7, batch_len=7, eta=0.5, alpha=0.1)
        for (ws, bs), (wt, bt) in zip(_parameters(serial), _parameters(threaded)):
            assert np.array_equal(ws, wt)
            assert np.array_equal(bs, bt)


def test_sgd_batch_validates_arguments():
    net = FNN([2, 2], seed=0)
    inputs, targets = _samples(3, 2, 2)
    with pytest.raises(ValueError):
        net.sgd_batch(inputs, targets, training_set_len=3, batch_len=2, eta=0.1, alpha=0.0)
    with pytest.raises(ValueError):
        net.sgd_batch(inputs, targets[:2], training_set_len=3, batch_len=3, eta=0.1, alpha=0.0)
    with pytest.raises(ValueError):
        net.sgd_batch(inputs, targets, training_set_len=0, batch_len=3, eta=0.1, alpha=0.0)


def test_make_batches_keeps_order_and_partial_tail():
    inputs, targets = _samples(7, 2, 2)
    batches = make_batches(inputs, targets, 3)
    assert [len(batch) for batch in batches] == [3, 3, 1]
    assert batches[2].inputs[0] is inputs[6]


def test_sgd_reports_batches_and_epochs():
    inputs, targets = _samples(10, 3, 2)
    net = FNN([3, 2], seed=0)
    seen = []
    assert net.sgd(inputs, targets, 2, 4, 0.5, 0.0, on_epoch=seen.append) == 3
    assert seen == [1, 2]
