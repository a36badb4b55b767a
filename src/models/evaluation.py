"""
Held-out evaluation.

Runs batch inference over test samples and turns the raw outputs into
plain PredictionRecords. The decoded class is the arg-max output (ties go
to the lowest class index); its output value, scaled to percent, is the
confidence.

For the sequence variant a single held-out sequence is scored position by
position over a fixed-length prefix. A sigmoid output p is read as the
two-class distribution [1 - p, p].
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics import confusion_matrix
from tensorflow import keras

from src.dataset.partition import Sample
from src.errors import InferenceError
from src.models.arena import ResourceArena

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionRecord:
    """One scored sample (or sequence position)."""
    input: str
    predicted: str
    confidence: float
    actual: str
    correct: bool


@dataclass(frozen=True)
class EvaluationResult:
    """
    Outcome of an evaluation request.

    ready is False when no model was available; records are then empty
    and the display side should show a neutral state.
    """
    ready: bool
    records: Tuple[PredictionRecord, ...] = ()
    accuracy: int = 0
    confusion: Optional[np.ndarray] = None

    @classmethod
    def not_ready(cls) -> 'EvaluationResult':
        return cls(ready=False)


def decode(outputs: np.ndarray) -> Tuple[int, float]:
    """
    Decode one output distribution.

    Returns:
        (class index, confidence in [0, 100])
    """
    index = int(np.argmax(outputs))  # first maximum wins ties
    confidence = float(np.clip(float(outputs[index]) * 100.0, 0.0, 100.0))
    return index, confidence


def accuracy_percent(records: Sequence[PredictionRecord]) -> int:
    """
    Percentage of correct records, rounded to the nearest integer (.5 up).

    Computed in integers so the rounding is exact. No records gives 0.
    """
    total = len(records)
    if total == 0:
        return 0
    correct = sum(1 for r in records if r.correct)
    return (200 * correct + total) // (2 * total)


def require_model(model: Optional[keras.Model]) -> keras.Model:
    """
    Raises:
        InferenceError: If no model is ready
    """
    if model is None:
        raise InferenceError("No trained model is available for inference")
    return model


def evaluate_samples(
    model: keras.Model,
    samples: Sequence[Sample],
    class_names: Sequence[str],
    batch_size: int = 32
) -> List[PredictionRecord]:
    """
    Score independent samples with a categorical model.

    Args:
        model: Trained Keras model with a softmax output
        samples: Held-out samples with integer labels
        class_names: Ordered class names
        batch_size: Inference batch size

    Returns:
        One PredictionRecord per sample, in sample order
    """
    model = require_model(model)
    if not samples:
        return []

    with ResourceArena('evaluate') as arena:
        x = arena.array(np.stack([s.features for s in samples]))
        probs = np.array(arena.keep(model.predict(x, batch_size=batch_size, verbose=0)))

    records = []
    for sample, outputs in zip(samples, probs):
        index, confidence = decode(outputs)
        actual = class_names[int(sample.label)]
        predicted = class_names[index]
        records.append(PredictionRecord(
            input=sample.ref,
            predicted=predicted,
            confidence=confidence,
            actual=actual,
            correct=predicted == actual
        ))
    return records


def evaluate_sequence(
    model: keras.Model,
    sample: Sample,
    class_names: Sequence[str] = ('0', '1'),
    positions: int = 50
) -> List[PredictionRecord]:
    """
    Score the first `positions` positions of one framed sequence.

    Input t is symbol t of the sequence; the actual value is symbol t + 1.
    """
    model = require_model(model)

    with ResourceArena('evaluate-sequence') as arena:
        x = arena.array(sample.features[np.newaxis, ...])
        outputs = arena.keep(model.predict(x, verbose=0))
        p_one = np.array(outputs).reshape(-1)

    n = min(positions, len(p_one))
    targets = np.asarray(sample.label).reshape(-1)

    records = []
    for i in range(n):
        p = float(p_one[i])
        index, confidence = decode(np.array([1.0 - p, p]))
        predicted = class_names[index]
        actual = class_names[int(targets[i])]
        records.append(PredictionRecord(
            input=sample.ref[i],
            predicted=predicted,
            confidence=confidence,
            actual=actual,
            correct=predicted == actual
        ))
    return records


class Evaluator:
    """
    Evaluates a model on held-out samples for one variant.

    Example:
        >>> result = Evaluator(dataset.class_names).evaluate(model, dataset.test)
        >>> result.accuracy
        90
    """

    def __init__(
        self,
        class_names: Sequence[str],
        sequential: bool = False,
        sequence_positions: int = 50,
        max_samples: Optional[int] = None
    ):
        self.class_names = list(class_names)
        self.sequential = sequential
        self.sequence_positions = sequence_positions
        self.max_samples = max_samples

    def predict(self, model: keras.Model, samples: Sequence[Sample]) -> List[PredictionRecord]:
        if self.sequential:
            if not samples:
                return []
            return evaluate_sequence(model, samples[0], self.class_names, self.sequence_positions)

        if self.max_samples is not None:
            samples = samples[:self.max_samples]
        return evaluate_samples(model, samples, self.class_names)

    def evaluate(self, model: Optional[keras.Model], samples: Sequence[Sample]) -> EvaluationResult:
        """
        Score samples and summarise the result.

        Returns EvaluationResult.not_ready() instead of raising when there
        is no model.
        """
        if model is None:
            return EvaluationResult.not_ready()

        records = self.predict(model, samples)
        accuracy = accuracy_percent(records)

        labels = list(range(len(self.class_names)))
        if records:
            cm = confusion_matrix(
                [self.class_names.index(r.actual) for r in records],
                [self.class_names.index(r.predicted) for r in records],
                labels=labels
            )
        else:
            cm = np.zeros((len(labels), len(labels)), dtype=np.int64)

        logger.info(f"Evaluated {len(records)} records: accuracy {accuracy}%")
        return EvaluationResult(ready=True, records=tuple(records), accuracy=accuracy, confusion=cm)
