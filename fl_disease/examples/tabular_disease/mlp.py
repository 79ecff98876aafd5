"""
MLP Model for tabular disease classification.

Red pequeña y regularizada: cada contribuyente entrena con su propio CSV
(decenas a miles de filas), sin conjunto de validación externo.

Arquitectura (por capa oculta):
    Dense(He-normal, L2) -> ReLU -> BatchNorm -> Dropout
    ...
    Dense(1) -> Sigmoid
"""
from typing import Sequence, Tuple

import torch
import torch.nn as nn

from .schemas import DiseaseSchema

L2_LAMBDA = 0.001
LEARNING_RATE = 0.001

HiddenPlan = Tuple[Tuple[int, float], ...]


def layer_plan(in_features: int) -> HiddenPlan:
    """
    (units, dropout) per hidden layer; width grows with the feature count
    and dropout decreases deeper into the network.
    """
    if in_features <= 5:
        return ((32, 0.3), (16, 0.2))
    if in_features <= 13:
        return ((64, 0.3), (32, 0.2))
    return ((128, 0.4), (64, 0.3), (32, 0.2))


class DiseaseMLP(nn.Module):
    """
    Perceptrón multicapa para clasificación binaria.
    Devuelve probabilidades (sigmoid incluida), usar con BCELoss.
    """

    def __init__(self, in_features: int, hidden: Sequence[Tuple[int, float]] = None):
        super().__init__()
        hidden = tuple(tuple(h) for h in (hidden or layer_plan(in_features)))

        self.in_features = in_features
        self.hidden = hidden
        self.dense_layers = []  # views into body, not registered twice

        layers = []
        width = in_features
        for units, rate in hidden:
            dense = nn.Linear(width, units)
            nn.init.kaiming_normal_(dense.weight, mode='fan_in', nonlinearity='relu')
            nn.init.zeros_(dense.bias)
            self.dense_layers.append(dense)
            layers += [dense,
                       nn.ReLU(),
                       nn.BatchNorm1d(units, eps=1e-3, momentum=0.01),
                       nn.Dropout(p=rate)]
            width = units

        out = nn.Linear(width, 1)
        nn.init.xavier_uniform_(out.weight)
        nn.init.zeros_(out.bias)
        layers += [out, nn.Sigmoid()]

        self.body = nn.Sequential(*layers)

    def forward(self, x):
        return self.body(x)

    def l2_penalty(self) -> torch.Tensor:
        """L2 on the hidden kernels (output layer is not regularized)"""
        return L2_LAMBDA * sum(d.weight.pow(2).sum() for d in self.dense_layers)

    def topology(self) -> dict:
        return {
            'class_name': 'DiseaseMLP',
            'config': {
                'in_features': self.in_features,
                'hidden': [{'units': u, 'dropout': r, 'activation': 'relu',
                            'kernel_initializer': 'he_normal',
                            'kernel_regularizer': {'l2': L2_LAMBDA},
                            'batch_norm': True} for u, r in self.hidden],
                'output': {'units': 1, 'activation': 'sigmoid'},
            },
        }


def build_model(schema: DiseaseSchema, seed: int = None) -> DiseaseMLP:
    if seed is not None:
        torch.manual_seed(seed)
    return DiseaseMLP(in_features=schema.feature_count)


def build_optimizer(net: nn.Module) -> torch.optim.Optimizer:
    return torch.optim.Adam(net.parameters(), lr=LEARNING_RATE)
