"""
Training engine.

Runs a fixed number of epochs over a dataset's training set, one Keras
fit() call per epoch, and publishes an EpochLog after every epoch. The
run is a coroutine: the numeric work of each epoch is synchronous, and
control goes back to the event loop between epochs so progress can be
consumed while training continues.

States: idle -> running -> completed | failed. A run cannot be started
while another is running; starting after completed/failed begins a
fresh log.
"""

import asyncio
import enum
import gc
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from tensorflow import keras

from config import TrainingConfig
from src.dataset.partition import Dataset, stack_samples
from src.errors import RunStateError, ShapeError, TrainingError
from src.models.arena import ResourceArena
from src.models.architectures import ModelSpec, build_model

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass(frozen=True)
class EpochLog:
    """
    Metrics of one finished epoch.

    val_loss/val_accuracy are None when the validation slice was empty.
    """
    epoch: int
    loss: float
    accuracy: float
    val_loss: Optional[float] = None
    val_accuracy: Optional[float] = None

    @property
    def has_validation(self) -> bool:
        return self.val_loss is not None

    def __str__(self):
        text = f"Epoch {self.epoch}: loss={self.loss:.4f} accuracy={self.accuracy:.1%}"
        if self.has_validation:
            text += f" val_loss={self.val_loss:.4f} val_accuracy={self.val_accuracy:.1%}"
        return text


_END = object()


class ProgressChannel:
    """
    Ordered, lossless stream of EpochLog entries for one run.

    Consumers either iterate it (`async for entry in channel`) until the
    run ends, or poll with drain().
    """

    def __init__(self):
        self._queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, entry: EpochLog) -> None:
        if self._closed:
            raise RuntimeError("Progress channel is closed")
        self._queue.put_nowait(entry)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    async def get(self) -> Optional[EpochLog]:
        """Next entry, or None once the run has ended."""
        item = await self._queue.get()
        if item is _END:
            # Leave the marker for any other consumer
            self._queue.put_nowait(_END)
            return None
        return item

    def drain(self) -> List[EpochLog]:
        """Entries published so far and not yet consumed."""
        entries = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _END:
                self._queue.put_nowait(_END)
                break
            entries.append(item)
        return entries

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            entry = await self.get()
            if entry is None:
                return
            yield entry


class GarbageCollectorCallback(keras.callbacks.Callback):
    """Free memory after each epoch."""
    def on_epoch_end(self, epoch, logs=None):
        gc.collect()


def check_input_shape(spec: ModelSpec, x: np.ndarray) -> None:
    """
    Verify stacked inputs match the model's per-sample input shape.

    None dimensions in the spec accept any length.

    Raises:
        ShapeError: On rank or dimension mismatch
    """
    actual = tuple(x.shape[1:])
    expected = tuple(spec.input_shape)

    if len(actual) != len(expected) or any(
        e is not None and e != a for e, a in zip(expected, actual)
    ):
        raise ShapeError(f"Input shape {actual} does not match model input {expected}")


def carve_validation(
    x: np.ndarray,
    y: np.ndarray,
    validation_split: float
) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Withhold the last fraction of the training arrays for validation.

    Returns:
        (x_train, y_train, x_val, y_val); the validation arrays are None
        when the fraction rounds down to zero samples
    """
    if not 0.0 <= validation_split < 1.0:
        raise ValueError(f"validation_split must be in [0, 1), got {validation_split}")

    n_val = int(len(x) * validation_split)
    if n_val == 0:
        return x, y, None, None

    cut = len(x) - n_val
    return x[:cut], y[:cut], x[cut:], y[cut:]


def _metric(history: dict, key: str) -> Optional[float]:
    values = history.get(key)
    if not values:
        return None
    return float(values[-1])


class TrainingEngine:
    """
    Drives training runs for one model spec.

    The engine never keeps the trained model: run() hands it to the caller,
    which owns it from then on.

    Example:
        >>> engine = TrainingEngine(spec, config.training)
        >>> model = asyncio.run(engine.run(dataset))
        >>> engine.state, len(engine.log)
        (<RunState.COMPLETED: 'completed'>, 10)
    """

    def __init__(self, spec: ModelSpec, config: TrainingConfig):
        self.spec = spec
        self.config = config
        self.state = RunState.IDLE
        self.error: Optional[Exception] = None
        self.progress = ProgressChannel()
        self._log: List[EpochLog] = []
        self._runs = 0

    @property
    def log(self) -> Tuple[EpochLog, ...]:
        """Read-only view of the current run's epoch log."""
        return tuple(self._log)

    @property
    def running(self) -> bool:
        return self.state == RunState.RUNNING

    def _begin(self) -> ProgressChannel:
        if self.state == RunState.RUNNING:
            raise RunStateError("A training run is already in progress")

        self._runs += 1
        self._log = []
        self.error = None
        self.progress = ProgressChannel()
        self.state = RunState.RUNNING
        return self.progress

    def _fail(self, error: Exception) -> None:
        self.error = error
        self.state = RunState.FAILED
        logger.error(f"Training run {self._runs} failed: {type(error).__name__}: {error}")

    def _prepare(self, arena: ResourceArena, dataset: Dataset):
        labels_are_classes = not self.spec.sequential_output
        x, y = stack_samples(dataset.train, self.spec.num_classes if labels_are_classes else 0)
        check_input_shape(self.spec, x)

        x_train, y_train, x_val, y_val = carve_validation(x, y, self.config.validation_split)
        arena.keep(x)
        arena.keep(y)
        x_train, y_train = arena.tensor(x_train), arena.tensor(y_train)
        validation = None
        if x_val is not None:
            validation = (arena.tensor(x_val), arena.tensor(y_val))
        return x_train, y_train, validation

    def _epoch_entry(self, epoch: int, history: dict) -> EpochLog:
        loss = _metric(history, 'loss')
        if loss is None or not math.isfinite(loss):
            raise TrainingError(f"Non-finite loss {loss} at epoch {epoch}; training diverged")

        return EpochLog(
            epoch=epoch,
            loss=loss,
            accuracy=_metric(history, 'accuracy') or 0.0,
            val_loss=_metric(history, 'val_loss'),
            val_accuracy=_metric(history, 'val_accuracy')
        )

    async def run(self, dataset: Dataset) -> keras.Model:
        """
        Train a fresh model on dataset.train.

        Args:
            dataset: Partitioned dataset (only the training set is used)

        Returns:
            The trained, compiled Keras model

        Raises:
            RunStateError: If a run is already in progress
            ShapeError: If the samples do not fit the model
            TrainingError: If the loss becomes non-finite
        """
        channel = self._begin()
        run_id = self._runs
        epochs = self.config.epochs

        try:
            with ResourceArena(f'train-{run_id}') as arena:
                x_train, y_train, validation = self._prepare(arena, dataset)
                model = build_model(self.spec)

                logger.info(
                    f"Run {run_id}: {self.spec.variant}, {model.count_params():,} parameters, "
                    f"{epochs} epochs, batch {self.config.batch_size}, "
                    f"{'no' if validation is None else len(validation[0])} validation samples"
                )

                for epoch in range(epochs):
                    history = model.fit(
                        x_train,
                        y_train,
                        batch_size=self.config.batch_size,
                        initial_epoch=epoch,
                        epochs=epoch + 1,
                        validation_data=validation,
                        shuffle=True,
                        callbacks=[keras.callbacks.TerminateOnNaN(), GarbageCollectorCallback()],
                        verbose=0
                    )

                    entry = self._epoch_entry(epoch + 1, history.history)
                    self._log.append(entry)
                    channel.publish(entry)
                    logger.info(str(entry))

                    # Let progress consumers run between epochs
                    await asyncio.sleep(0)

                del x_train, y_train, validation

        except Exception as e:
            self._fail(e)
            raise
        finally:
            channel.close()

        self.state = RunState.COMPLETED
        logger.info(f"Run {run_id} completed after {len(self._log)} epochs")
        return model
