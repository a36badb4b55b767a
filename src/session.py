"""
Run context for one exercise.

A Session wires a dataset adapter, a training engine and an evaluator
together and owns the current model. The model is only replaced when a
run completes, so readers never observe a half-trained model; the
previous model is dropped at that point.

Surrounding code reads epoch_log and predictions, both plain tuples of
frozen records, and never touches tensors or the model itself.
"""

import asyncio
import gc
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from tensorflow import keras

from config import ExperimentConfig, get_config
from src.dataset.adapters import get_adapter
from src.dataset.partition import Dataset, Sample
from src.errors import InferenceError, RunStateError
from src.models.architectures import spec_from_config
from src.models.artifacts import export_model, import_model
from src.models.evaluation import EvaluationResult, Evaluator, PredictionRecord
from src.models.training import EpochLog, ProgressChannel, RunState, TrainingEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    """Everything a finished run exposes."""
    variant: str
    epoch_log: Tuple[EpochLog, ...]
    evaluation: EvaluationResult
    train_size: int
    test_size: int
    dropped: int = 0

    @property
    def accuracy(self) -> int:
        """Held-out test accuracy in percent."""
        return self.evaluation.accuracy

    @property
    def predictions(self) -> Tuple[PredictionRecord, ...]:
        return self.evaluation.records


class Session:
    """
    One exercise's training/evaluation context.

    Example:
        >>> session = Session(get_config('tabular'))
        >>> result = asyncio.run(session.train())
        >>> len(result.predictions), result.accuracy
        (10, 90)
    """

    def __init__(self, config: ExperimentConfig, base_dir: Optional[str] = None):
        self.config = config
        self.base_dir = base_dir
        self.spec = spec_from_config(config)
        self.engine = TrainingEngine(self.spec, config.training)
        self.evaluator = Evaluator(
            config.data.class_names,
            sequential=self.spec.sequential_output,
            sequence_positions=config.evaluation.sequence_positions,
            max_samples=config.evaluation.max_samples
        )
        self.dataset: Optional[Dataset] = None
        self._model: Optional[keras.Model] = None
        self._evaluation = EvaluationResult.not_ready()
        self._active = False

    @property
    def state(self) -> RunState:
        return self.engine.state

    @property
    def epoch_log(self) -> Tuple[EpochLog, ...]:
        return self.engine.log

    @property
    def progress(self) -> ProgressChannel:
        return self.engine.progress

    @property
    def predictions(self) -> Tuple[PredictionRecord, ...]:
        return self._evaluation.records

    @property
    def model_ready(self) -> bool:
        return self._model is not None

    def _install(self, model: keras.Model) -> None:
        # Wholesale swap; the superseded model is released here
        previous, self._model = self._model, model
        logger.info(f"Installed model {model.name}")
        if previous is not None:
            del previous
            gc.collect()

    async def load(self) -> Dataset:
        """Load and partition a fresh dataset."""
        self.dataset = await get_adapter(self.config, self.base_dir).load()
        return self.dataset

    async def train(self, dataset: Optional[Dataset] = None) -> RunResult:
        """
        Load (unless given a dataset), train, and evaluate on the test set.

        Raises:
            RunStateError: If a run is already in progress
            LoadError, ShapeError, TrainingError: Reported, not retried
        """
        if self._active or self.engine.running:
            raise RunStateError("A training run is already in progress")

        self._active = True
        try:
            if dataset is None:
                dataset = await self.load()
            else:
                self.dataset = dataset
            model = await self.engine.run(dataset)
        finally:
            self._active = False

        self._install(model)
        self._evaluation = self.evaluator.evaluate(self._model, dataset.test)

        return RunResult(
            variant=self.config.variant,
            epoch_log=self.engine.log,
            evaluation=self._evaluation,
            train_size=len(dataset.train),
            test_size=len(dataset.test),
            dropped=dataset.dropped
        )

    def predict(self, samples: Optional[Sequence[Sample]] = None) -> EvaluationResult:
        """
        Evaluate samples (default: the current test set) with the current model.

        Returns a not-ready result when no model has been trained or loaded.
        """
        if self._model is None:
            return EvaluationResult.not_ready()
        if samples is None:
            samples = self.dataset.test if self.dataset is not None else ()
        return self.evaluator.evaluate(self._model, samples)

    def export_model(self, path: str) -> str:
        """
        Raises:
            InferenceError: If there is no model to export
        """
        if self._model is None:
            raise InferenceError("No trained model to export")
        return export_model(self._model, path)

    def load_model(self, path: str) -> None:
        """Install a previously exported model as the current model."""
        self._install(import_model(path))


def run_experiment(
    variant: str,
    config: ExperimentConfig = None,
    base_dir: Optional[str] = None
) -> RunResult:
    """
    Run one exercise end to end.

    Args:
        variant: Variant tag (ignored when config is given)
        config: Experiment configuration (defaults for the variant if None)
        base_dir: Directory relative data sources are resolved against

    Returns:
        RunResult with epoch log, predictions and test accuracy
    """
    if config is None:
        config = get_config(variant)

    session = Session(config, base_dir)
    return asyncio.run(session.train())
