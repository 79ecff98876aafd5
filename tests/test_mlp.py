import pytest
import torch

from fl_disease.examples.tabular_disease.mlp import DiseaseMLP, build_model, layer_plan
from fl_disease.examples.tabular_disease.schemas import SCHEMAS


@pytest.mark.parametrize('n,units', [
    (5, [32, 16]),
    (8, [64, 32]),
    (13, [64, 32]),
    (22, [128, 64, 32]),
    (24, [128, 64, 32]),
])
def test_layer_plan(n, units):
    plan = layer_plan(n)
    assert [u for u, _ in plan] == units
    rates = [r for _, r in plan]
    assert rates == sorted(rates, reverse=True)


def test_output_is_a_probability(any_schema):
    net = build_model(any_schema, seed=1)
    net.eval()
    with torch.no_grad():
        out = net(torch.rand(7, any_schema.feature_count))
    assert out.shape == (7, 1)
    assert torch.all((out >= 0) & (out <= 1))


def test_same_seed_same_weights():
    a = build_model(SCHEMAS['cancer'], seed=3)
    b = build_model(SCHEMAS['cancer'], seed=3)
    for (ka, va), (kb, vb) in zip(a.state_dict().items(), b.state_dict().items()):
        assert ka == kb
        assert torch.equal(va, vb)


def test_state_dict_has_single_copy_of_each_layer():
    net = DiseaseMLP(5)
    keys = list(net.state_dict())
    assert all(k.startswith('body.') for k in keys)
    assert len(net.dense_layers) == 2
    # 2 x (linear + batchnorm) + output linear
    assert sum(k.endswith('.weight') for k in keys) == 5


def test_l2_penalty_covers_hidden_kernels():
    net = DiseaseMLP(8)
    expected = 0.001 * sum(d.weight.pow(2).sum() for d in net.dense_layers)
    assert net.l2_penalty().item() == pytest.approx(expected.item())
    assert net.l2_penalty().item() > 0


def test_topology_describes_layers():
    topo = DiseaseMLP(22).topology()
    assert topo['config']['in_features'] == 22
    assert [h['units'] for h in topo['config']['hidden']] == [128, 64, 32]
    assert topo['config']['output'] == {'units': 1, 'activation': 'sigmoid'}
