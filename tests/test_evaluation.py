"""Tests for held-out evaluation and accuracy rounding."""

import numpy as np
import pytest

from src.data.sequence import follows_rule, frame_sequence, generate_binary_sequence
from src.dataset.partition import Sample
from src.errors import InferenceError
from src.models.architectures import get_model
from src.models.evaluation import (
    EvaluationResult,
    Evaluator,
    PredictionRecord,
    accuracy_percent,
    decode,
    evaluate_samples,
    evaluate_sequence,
    require_model,
)

CLASSES = ['setosa', 'versicolor', 'virginica']


class FixedModel:
    """Returns canned outputs instead of running a network."""

    def __init__(self, outputs):
        self.outputs = np.asarray(outputs, dtype=np.float32)
        self.calls = 0

    def predict(self, x, batch_size=None, verbose=0):
        self.calls += 1
        return self.outputs[:len(x)]


def records(correct, total):
    return [
        PredictionRecord(input='', predicted='a', confidence=50.0, actual='a' if i < correct else 'b',
                         correct=i < correct)
        for i in range(total)
    ]


def samples(labels):
    return [Sample(features=np.zeros(4, np.float32), label=label, ref=f"s{i}")
            for i, label in enumerate(labels)]


class TestDecode:
    def test_argmax_and_confidence(self):
        assert decode(np.array([0.1, 0.7, 0.2])) == (1, pytest.approx(70.0))

    def test_ties_go_to_lowest_index(self):
        index, confidence = decode(np.array([0.4, 0.4, 0.2]))
        assert index == 0
        assert confidence == pytest.approx(40.0)

    def test_confidence_is_clamped(self):
        assert decode(np.array([1.0000001, 0.0]))[1] == 100.0


class TestAccuracyPercent:
    @pytest.mark.parametrize("correct,total,expected", [
        (10, 10, 100),
        (0, 10, 0),
        (1, 8, 13),    # 12.5 rounds up
        (3, 8, 38),    # 37.5 rounds up
        (1, 3, 33),
        (2, 3, 67),
        (1, 200, 1),   # 0.5 rounds up
        (9, 10, 90),
    ])
    def test_half_up_rounding(self, correct, total, expected):
        assert accuracy_percent(records(correct, total)) == expected

    def test_empty(self):
        assert accuracy_percent([]) == 0


class TestEvaluateSamples:
    def test_one_record_per_sample(self):
        model = FixedModel([[0.8, 0.1, 0.1], [0.2, 0.3, 0.5], [0.3, 0.4, 0.3]])
        result = evaluate_samples(model, samples([0, 1, 1]), CLASSES)

        assert [r.predicted for r in result] == ['setosa', 'virginica', 'versicolor']
        assert [r.actual for r in result] == ['setosa', 'versicolor', 'versicolor']
        assert [r.correct for r in result] == [True, False, True]
        assert [r.input for r in result] == ['s0', 's1', 's2']
        assert result[0].confidence == pytest.approx(80.0)

    def test_confidence_matches_decoded_output(self):
        rng = np.random.default_rng(0)
        raw = rng.random((20, 3))
        probs = raw / raw.sum(axis=1, keepdims=True)
        result = evaluate_samples(FixedModel(probs), samples([0] * 20), CLASSES)

        for record, row in zip(result, probs):
            assert 0.0 <= record.confidence <= 100.0
            index = CLASSES.index(record.predicted)
            assert index == int(np.argmax(row))
            assert record.confidence == pytest.approx(row[index] * 100, rel=1e-5)

    def test_records_are_immutable(self):
        result = evaluate_samples(FixedModel([[1.0, 0.0, 0.0]]), samples([0]), CLASSES)
        with pytest.raises(Exception):
            result[0].correct = False

    def test_no_samples(self):
        model = FixedModel([[1.0, 0.0, 0.0]])
        assert evaluate_samples(model, [], CLASSES) == []
        assert model.calls == 0

    def test_missing_model_raises(self):
        with pytest.raises(InferenceError):
            evaluate_samples(None, samples([0]), CLASSES)
        with pytest.raises(InferenceError):
            require_model(None)


class TestEvaluateSequence:
    def test_position_wise_prefix(self):
        symbols = '0110100110'
        x, y = frame_sequence(symbols)
        sample = Sample(features=x, label=y, ref=symbols)
        # p(1) for each of the 9 positions
        outputs = np.array([0.9, 0.2, 0.5, 0.7, 0.1, 0.1, 0.8, 0.6, 0.3]).reshape(1, 9, 1)

        result = evaluate_sequence(FixedModel(outputs), sample, positions=5)

        assert len(result) == 5
        assert [r.input for r in result] == list(symbols[:5])
        assert [r.actual for r in result] == list(symbols[1:6])
        # p = 0.5 is a tie between the two classes; the lower index ('0') wins
        assert [r.predicted for r in result] == ['1', '0', '0', '1', '0']
        assert result[0].confidence == pytest.approx(90.0)
        assert result[1].confidence == pytest.approx(80.0)

    def test_prefix_longer_than_sequence(self):
        x, y = frame_sequence('0110')
        sample = Sample(features=x, label=y, ref='0110')
        outputs = np.full((1, 3, 1), 0.9)
        assert len(evaluate_sequence(FixedModel(outputs), sample, positions=50)) == 3

    def test_generated_sequence_scenario(self):
        seq = generate_binary_sequence(10000, np.random.default_rng(42))
        assert follows_rule(seq)
        x, y = frame_sequence(seq)
        sample = Sample(features=x, label=y, ref=seq)

        model = get_model('sequence-rnn')
        result = evaluate_sequence(model, sample, positions=50)

        assert len(result) == 50
        for i, record in enumerate(result):
            assert record.input == seq[i]
            assert record.actual == seq[i + 1]
            assert record.predicted in ('0', '1')
            assert 50.0 <= record.confidence <= 100.0


class TestEvaluator:
    def test_not_ready_without_model(self):
        result = Evaluator(CLASSES).evaluate(None, samples([0, 1]))
        assert result == EvaluationResult.not_ready()
        assert not result.ready
        assert result.records == ()

    def test_summary(self):
        model = FixedModel([[0.8, 0.1, 0.1], [0.2, 0.3, 0.5], [0.3, 0.4, 0.3], [0.1, 0.1, 0.8]])
        result = Evaluator(CLASSES).evaluate(model, samples([0, 1, 1, 2]))

        assert result.ready
        assert len(result.records) == 4
        assert result.accuracy == 75
        assert result.confusion.shape == (3, 3)
        assert result.confusion.sum() == 4
        assert result.confusion[1, 2] == 1

    def test_max_samples(self):
        model = FixedModel([[1.0, 0.0, 0.0]] * 5)
        result = Evaluator(CLASSES, max_samples=2).evaluate(model, samples([0] * 5))
        assert len(result.records) == 2

    def test_sequential_uses_first_sample(self):
        x, y = frame_sequence('01101')
        sample = Sample(features=x, label=y, ref='01101')
        model = FixedModel(np.full((1, 4, 1), 0.2))
        result = Evaluator(['0', '1'], sequential=True, sequence_positions=3).evaluate(model, [sample])
        assert len(result.records) == 3
        assert result.confusion.shape == (2, 2)
