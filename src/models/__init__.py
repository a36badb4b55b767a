"""
Model architectures, training and evaluation.
"""

from .architectures import ModelSpec, build_model, compile_model, spec_from_config, MODEL_REGISTRY
from .training import TrainingEngine, EpochLog, RunState, ProgressChannel
from .evaluation import Evaluator, EvaluationResult, PredictionRecord, accuracy_percent
from .artifacts import export_model, import_model

__all__ = [
    'ModelSpec',
    'build_model',
    'compile_model',
    'spec_from_config',
    'MODEL_REGISTRY',
    'TrainingEngine',
    'EpochLog',
    'RunState',
    'ProgressChannel',
    'Evaluator',
    'EvaluationResult',
    'PredictionRecord',
    'accuracy_percent',
    'export_model',
    'import_model'
]
