"""
Local training loop for the contributor model.

Proporciona:
- TabularDataset: Dataset PyTorch sobre la matriz normalizada
- make_train_loader: DataLoader barajado, sin batches de una sola fila
- split_validation: separa el 20% final como validación
- execute_tabular_training: entrenamiento por épocas con callback de progreso
"""
import math
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn
from sklearn.model_selection import train_test_split
from torch.utils.data import BatchSampler, DataLoader, Dataset, RandomSampler

from fl_disease.lib.util.errors import TrainingError
from .mlp import DiseaseMLP, build_optimizer

VALIDATION_SPLIT = 0.2

ProgressCallback = Callable[[int, Dict[str, float]], None]


class TabularDataset(Dataset):
    """Filas normalizadas (float32) con su etiqueta 0/1, una fila por item."""

    def __init__(self, features: np.ndarray, labels: np.ndarray):
        self.X = torch.as_tensor(np.asarray(features, dtype=np.float32))
        self.y = torch.as_tensor(np.asarray(labels, dtype=np.float32).reshape(-1, 1))

    def __len__(self):
        return len(self.X)

    def __getitem__(self, idx):
        return self.X[idx], self.y[idx]


@dataclass
class TrainingHistory:
    loss: List[float] = field(default_factory=list)
    accuracy: List[float] = field(default_factory=list)
    val_loss: List[float] = field(default_factory=list)
    val_accuracy: List[float] = field(default_factory=list)

    def append(self, metrics: Dict[str, float]):
        for key, value in metrics.items():
            getattr(self, key).append(value)

    @property
    def final_loss(self) -> float:
        return self.loss[-1]

    @property
    def final_accuracy(self) -> float:
        return self.accuracy[-1]


def percent_complete(done: int, total: int) -> int:
    """round(100 * done / total), halves rounded up"""
    return int(math.floor(100 * done / total + 0.5))


def split_validation(features: np.ndarray, labels: np.ndarray,
                     validation_split: float = VALIDATION_SPLIT) -> Tuple[TabularDataset, TabularDataset]:
    """
    Hold out the LAST `validation_split` fraction of the rows (file order)
    for validation. Both parts must keep at least one row.
    """
    n = len(features)
    if len(labels) != n:
        raise TrainingError(f'Feature rows ({n}) and labels ({len(labels)}) differ')
    if n < 2:
        raise TrainingError(f'Need at least 2 rows to train/validate, found {n}')

    X_train, X_val, y_train, y_val = train_test_split(
        features, labels, test_size=validation_split, shuffle=False)
    if len(X_train) < 2 or len(X_val) < 1:
        raise TrainingError(f'Too few rows ({n}) for a {validation_split:.0%} validation split')
    return TabularDataset(X_train, y_train), TabularDataset(X_val, y_val)


class TailMergingBatchSampler(BatchSampler):
    """
    BatchSampler that folds a trailing single-row batch into the previous
    batch (batch norm needs more than one value per channel in train mode).
    """

    def __init__(self, sampler, batch_size: int):
        super().__init__(sampler, batch_size, drop_last=False)

    def __iter__(self):
        batches = [list(b) for b in super().__iter__()]
        if len(batches) > 1 and len(batches[-1]) == 1:
            tail = batches.pop()
            batches[-1] = batches[-1] + tail
        return iter(batches)

    def __len__(self):
        n = len(self.sampler)
        full, rest = divmod(n, self.batch_size)
        if rest == 1 and full > 0:
            return full
        return full + (1 if rest else 0)


def make_train_loader(ds: TabularDataset, batch_size: int, generator: torch.Generator) -> DataLoader:
    """Shuffled every epoch; each row appears exactly once per epoch"""
    sampler = RandomSampler(ds, generator=generator)
    return DataLoader(ds, batch_sampler=TailMergingBatchSampler(sampler, batch_size))


def _check_finite(value: float, what: str, epoch: int) -> float:
    if not math.isfinite(value):
        raise TrainingError(f'{what} became {value} at epoch {epoch}')
    return value


def evaluate(net: DiseaseMLP, criterion: nn.Module, ds: TabularDataset) -> Tuple[float, float]:
    """(loss, accuracy) in eval mode, loss includes the L2 term"""
    net.eval()
    with torch.no_grad():
        probs = net(ds.X)
        loss = criterion(probs, ds.y) + net.l2_penalty()
        preds = (probs >= 0.5).float()
        accuracy = (preds == ds.y).float().mean()
    return float(loss.item()), float(accuracy.item())


def train_one_epoch(net: DiseaseMLP, criterion: nn.Module, optimizer: torch.optim.Optimizer,
                    trainloader: DataLoader) -> Tuple[float, float]:
    """One pass over the shuffled training split; returns mean (loss, accuracy)"""
    net.train()
    running_loss = 0.0
    correct = 0.0
    seen = 0

    for inputs, labels in trainloader:
        optimizer.zero_grad()
        probs = net(inputs)
        loss = criterion(probs, labels) + net.l2_penalty()
        loss.backward()
        optimizer.step()

        running_loss += float(loss.item()) * len(labels)
        correct += float(((probs.detach() >= 0.5).float() == labels).sum().item())
        seen += len(labels)

    return running_loss / seen, correct / seen


def execute_tabular_training(net: DiseaseMLP,
                             features: np.ndarray,
                             labels: np.ndarray,
                             epochs: int,
                             batch_size: int,
                             on_progress: Optional[ProgressCallback] = None,
                             validation_split: float = VALIDATION_SPLIT,
                             seed: Optional[int] = None) -> TrainingHistory:
    """
    Rutina de entrenamiento local.

    Args:
        net: Red (DiseaseMLP) sin entrenar
        features: Matriz normalizada (filas x features)
        labels: Etiquetas 0/1 (filas x 1)
        epochs: Número de épocas
        batch_size: Tamaño de batch
        on_progress: callback(percent, {loss, accuracy, val_loss, val_accuracy}),
            llamado exactamente una vez por época
        validation_split: fracción final retenida para validación
        seed: semilla del barajado

    Returns:
        TrainingHistory con las métricas por época

    Raises:
        TrainingError: cualquier fallo durante el ajuste; no hay resultados parciales
    """
    if epochs < 1:
        raise TrainingError(f'epochs must be >= 1, got {epochs}')

    try:
        train_ds, val_ds = split_validation(features, labels, validation_split)

        generator = torch.Generator()
        if seed is not None:
            generator.manual_seed(seed)
        else:
            generator.seed()

        trainloader = make_train_loader(train_ds, batch_size, generator)
        criterion = nn.BCELoss()
        optimizer = build_optimizer(net)
        history = TrainingHistory()

        logging.info(f'🚀 Training on {len(train_ds)} rows, validating on {len(val_ds)} '
                     f'({epochs} epochs, batch {batch_size})')

        for epoch in range(1, epochs + 1):
            loss, acc = train_one_epoch(net, criterion, optimizer, trainloader)
            val_loss, val_acc = evaluate(net, criterion, val_ds)

            metrics = {
                'loss': _check_finite(loss, 'loss', epoch),
                'accuracy': acc,
                'val_loss': _check_finite(val_loss, 'val_loss', epoch),
                'val_accuracy': val_acc,
            }
            history.append(metrics)

            logging.info(f'📘 Epoch {epoch}/{epochs} | Loss={loss:.4f} | Acc={acc:.4f} '
                         f'| Val_Loss={val_loss:.4f} | Val_Acc={val_acc:.4f}')
            if on_progress is not None:
                on_progress(percent_complete(epoch, epochs), dict(metrics))

    except TrainingError:
        raise
    except Exception as e:
        raise TrainingError(f'Training failed: {e}') from e

    return history
