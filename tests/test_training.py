"""Tests for the training engine, its state machine and progress channel."""

import asyncio

import numpy as np
import pytest
from tensorflow import keras

from config import TrainingConfig
from src.dataset.partition import Dataset, Sample, partition
from src.errors import RunStateError, ShapeError, TrainingError
from src.models.architectures import ModelSpec
from src.models.training import (
    EpochLog,
    ProgressChannel,
    RunState,
    TrainingEngine,
    carve_validation,
    check_input_shape,
)

TABULAR_SPEC = ModelSpec(variant='tabular', input_shape=(4,), num_classes=3, learning_rate=0.05)
SEQUENCE_SPEC = ModelSpec(variant='sequence-rnn', input_shape=(None, 1), num_classes=1)


def tabular_dataset(n=60, seed=0, corrupt=False):
    rng = np.random.default_rng(seed)
    samples = []
    for i in range(n):
        label = i % 3
        features = rng.normal(label, 0.1, size=4).astype(np.float32)
        if corrupt:
            features[0] = np.nan
        samples.append(Sample(features=features, label=label, ref=f"row{i}"))
    return partition(samples, test_size=6, seed=seed, class_names=['a', 'b', 'c'])


def sequence_dataset(length=60):
    symbols = ('011' * length)[:length]
    values = np.array([int(c) for c in symbols], dtype=np.float32).reshape(-1, 1)
    sample = Sample(features=values[:-1], label=values[1:], ref=symbols)
    test = Sample(features=values[:-1], label=values[1:], ref=symbols)
    return Dataset(train=(sample,), test=(test,), class_names=('0', '1'))


def make_engine(epochs=3, validation_split=0.2, spec=TABULAR_SPEC, batch_size=8):
    return TrainingEngine(spec, TrainingConfig(
        epochs=epochs, batch_size=batch_size, validation_split=validation_split
    ))


class TestRun:
    def test_completes_with_one_entry_per_epoch(self):
        engine = make_engine(epochs=3)
        assert engine.state == RunState.IDLE

        model = asyncio.run(engine.run(tabular_dataset()))

        assert isinstance(model, keras.Model)
        assert engine.state == RunState.COMPLETED
        assert [e.epoch for e in engine.log] == [1, 2, 3]
        for entry in engine.log:
            assert np.isfinite(entry.loss)
            assert 0.0 <= entry.accuracy <= 1.0
            assert entry.has_validation

    def test_log_is_read_only_view(self):
        engine = make_engine(epochs=1)
        asyncio.run(engine.run(tabular_dataset()))
        assert isinstance(engine.log, tuple)
        with pytest.raises(Exception):
            engine.log[0].loss = 0.0

    def test_empty_validation_slice_is_skipped(self):
        engine = make_engine(epochs=2, validation_split=0.1, spec=SEQUENCE_SPEC, batch_size=1)
        asyncio.run(engine.run(sequence_dataset()))
        assert len(engine.log) == 2
        for entry in engine.log:
            assert entry.val_loss is None
            assert entry.val_accuracy is None
            assert not entry.has_validation

    def test_zero_validation_split(self):
        engine = make_engine(epochs=1, validation_split=0.0)
        asyncio.run(engine.run(tabular_dataset()))
        assert not engine.log[0].has_validation


class TestProgress:
    def test_entries_arrive_in_order_while_running(self):
        engine = make_engine(epochs=4)

        async def scenario():
            task = asyncio.create_task(engine.run(tabular_dataset()))
            await asyncio.sleep(0)
            channel = engine.progress

            first = await channel.get()
            assert first.epoch == 1
            assert engine.running

            rest = [entry.epoch async for entry in channel]
            await task
            return [first.epoch] + rest

        assert asyncio.run(scenario()) == [1, 2, 3, 4]

    def test_drain_after_completion(self):
        engine = make_engine(epochs=3)
        asyncio.run(engine.run(tabular_dataset()))
        entries = engine.progress.drain()
        assert [e.epoch for e in entries] == [1, 2, 3]
        assert engine.progress.closed
        assert engine.progress.drain() == []


class TestStateMachine:
    def test_start_while_running_is_rejected(self):
        engine = make_engine(epochs=3)

        async def scenario():
            task = asyncio.create_task(engine.run(tabular_dataset()))
            await asyncio.sleep(0)
            with pytest.raises(RunStateError):
                await engine.run(tabular_dataset())
            await task

        asyncio.run(scenario())
        assert engine.state == RunState.COMPLETED
        assert len(engine.log) == 3

    def test_new_run_clears_log_before_first_entry(self):
        engine = make_engine(epochs=3)
        asyncio.run(engine.run(tabular_dataset()))
        old_channel = engine.progress

        async def scenario():
            task = asyncio.create_task(engine.run(tabular_dataset(seed=1)))
            await asyncio.sleep(0)
            snapshot = engine.log
            await task
            return snapshot

        snapshot = asyncio.run(scenario())
        assert [e.epoch for e in snapshot] == [1]
        assert [e.epoch for e in engine.log] == [1, 2, 3]
        assert engine.progress is not old_channel

    def test_shape_mismatch_fails_run(self):
        spec = ModelSpec(variant='tabular', input_shape=(5,), num_classes=3)
        engine = make_engine(spec=spec)

        with pytest.raises(ShapeError):
            asyncio.run(engine.run(tabular_dataset()))

        assert engine.state == RunState.FAILED
        assert isinstance(engine.error, ShapeError)
        assert engine.log == ()
        assert engine.progress.closed

    def test_divergence_fails_run(self):
        engine = make_engine(epochs=3)

        with pytest.raises(TrainingError):
            asyncio.run(engine.run(tabular_dataset(corrupt=True)))

        assert engine.state == RunState.FAILED
        assert isinstance(engine.error, TrainingError)
        assert engine.log == ()

    def test_restart_after_failure(self):
        engine = make_engine(epochs=1)
        with pytest.raises(TrainingError):
            asyncio.run(engine.run(tabular_dataset(corrupt=True)))

        asyncio.run(engine.run(tabular_dataset()))
        assert engine.state == RunState.COMPLETED
        assert engine.error is None
        assert len(engine.log) == 1


class TestHelpers:
    def test_carve_validation_takes_tail(self):
        x = np.arange(10).reshape(10, 1)
        y = np.arange(10)
        x_train, y_train, x_val, y_val = carve_validation(x, y, 0.2)
        np.testing.assert_array_equal(y_train, np.arange(8))
        np.testing.assert_array_equal(y_val, [8, 9])
        assert len(x_train) + len(x_val) == 10

    def test_carve_validation_rounds_down_to_empty(self):
        x = np.zeros((1, 3))
        _, _, x_val, y_val = carve_validation(x, x, 0.1)
        assert x_val is None and y_val is None

    def test_carve_validation_rejects_full_split(self):
        with pytest.raises(ValueError):
            carve_validation(np.zeros((4, 1)), np.zeros(4), 1.0)

    def test_check_input_shape_wildcard(self):
        check_input_shape(SEQUENCE_SPEC, np.zeros((1, 99, 1)))
        with pytest.raises(ShapeError):
            check_input_shape(SEQUENCE_SPEC, np.zeros((1, 99, 2)))
        with pytest.raises(ShapeError):
            check_input_shape(TABULAR_SPEC, np.zeros((3, 4, 1)))

    def test_epoch_log_str(self):
        text = str(EpochLog(epoch=2, loss=0.5, accuracy=0.75))
        assert text == "Epoch 2: loss=0.5000 accuracy=75.0%"
        text = str(EpochLog(epoch=2, loss=0.5, accuracy=0.75, val_loss=0.25, val_accuracy=1.0))
        assert 'val_accuracy=100.0%' in text


class TestProgressChannel:
    def test_get_after_close_returns_none(self):
        async def scenario():
            channel = ProgressChannel()
            channel.publish(EpochLog(1, 0.1, 0.9))
            channel.close()
            return await channel.get(), await channel.get(), await channel.get()

        first, second, third = asyncio.run(scenario())
        assert first.epoch == 1
        assert second is None and third is None

    def test_publish_after_close_rejected(self):
        channel = ProgressChannel()
        channel.close()
        with pytest.raises(RuntimeError):
            channel.publish(EpochLog(1, 0.1, 0.9))
