"""
Model architectures for the four exercises.

Small, fixed architectures. These are intentionally kept simple for
educational purposes; the harness does not search over them.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from tensorflow import keras
from tensorflow.keras import layers

from config import ExperimentConfig


@dataclass(frozen=True)
class ModelSpec:
    """
    What to build for one variant.

    Attributes:
        variant: Variant tag ('tabular', 'image-cnn', 'image-cnn-catdog', 'sequence-rnn')
        input_shape: Per-sample input shape (no batch dimension)
        num_classes: Output classes (1 for the per-position sigmoid)
        learning_rate: Adam learning rate (None = Keras default)
    """
    variant: str
    input_shape: Tuple[Optional[int], ...]
    num_classes: int
    learning_rate: Optional[float] = None

    @property
    def loss(self) -> str:
        return LOSS_BY_VARIANT[self.variant]

    @property
    def sequential_output(self) -> bool:
        return self.variant == 'sequence-rnn'


def spec_from_config(config: ExperimentConfig) -> ModelSpec:
    """Derive the model spec from an experiment configuration."""
    data = config.data
    variant = config.variant

    if variant == 'tabular':
        input_shape = (data.num_features,)
    elif variant == 'image-cnn':
        input_shape = tuple(data.pixel_shape)
    elif variant == 'image-cnn-catdog':
        input_shape = (data.image_size, data.image_size, 3)
    else:
        input_shape = (None, 1)

    num_classes = 1 if variant == 'sequence-rnn' else len(data.class_names)

    return ModelSpec(
        variant=variant,
        input_shape=input_shape,
        num_classes=num_classes,
        learning_rate=config.training.learning_rate
    )


def build_mlp(input_shape=(4,), num_classes: int = 3) -> keras.Model:
    """
    Fully-connected classifier for tabular features.

    Architecture:
    - 3 hidden Dense(6, relu) layers
    - Softmax output sized to the class count
    """
    inputs = keras.Input(shape=input_shape)

    x = inputs
    for _ in range(3):
        x = layers.Dense(6, activation='relu')(x)

    outputs = layers.Dense(num_classes, activation='softmax')(x)

    return keras.Model(inputs, outputs, name='mlp')


def build_digit_cnn(input_shape=(28, 28, 1), num_classes: int = 10) -> keras.Model:
    """
    CNN for handwritten digits.

    Architecture:
    - 2x2 max pooling (stride 2) first, to shrink the input cheaply
    - One 3x3 convolution with 32 filters
    - Flatten -> Dense(64) -> Dropout(0.3) -> softmax

    Parameters: ~400K
    """
    inputs = keras.Input(shape=input_shape)

    # 28 -> 14
    x = layers.MaxPooling2D(pool_size=2, strides=2)(inputs)
    x = layers.Conv2D(32, 3, padding='same', activation='relu')(x)

    x = layers.Flatten()(x)
    x = layers.Dense(64, activation='relu')(x)
    x = layers.Dropout(0.3)(x)
    outputs = layers.Dense(num_classes, activation='softmax')(x)

    return keras.Model(inputs, outputs, name='digit_cnn')


def build_catdog_cnn(input_shape=(128, 128, 3), num_classes: int = 2) -> keras.Model:
    """
    CNN for cat vs dog photos.

    Same pooling/convolution front end as the digit CNN, but the flattened
    features go straight to the softmax layer.
    """
    inputs = keras.Input(shape=input_shape)

    # 128 -> 64
    x = layers.MaxPooling2D(pool_size=2, strides=2)(inputs)
    x = layers.Conv2D(32, 3, padding='same', activation='relu')(x)

    x = layers.Flatten()(x)
    outputs = layers.Dense(num_classes, activation='softmax')(x)

    return keras.Model(inputs, outputs, name='catdog_cnn')


def build_sequence_rnn(input_shape=(None, 1), num_classes: int = 1) -> keras.Model:
    """
    Sequence-to-sequence recurrent model.

    A SimpleRNN emits one hidden state per position; a shared Dense layer
    turns each into the probability that the next symbol is 1.
    """
    inputs = keras.Input(shape=input_shape)

    x = layers.SimpleRNN(32, activation='tanh', return_sequences=True)(inputs)
    outputs = layers.Dense(num_classes, activation='sigmoid')(x)

    return keras.Model(inputs, outputs, name='sequence_rnn')


# Registry for easy access
MODEL_REGISTRY = {
    'tabular': build_mlp,
    'image-cnn': build_digit_cnn,
    'image-cnn-catdog': build_catdog_cnn,
    'sequence-rnn': build_sequence_rnn
}

LOSS_BY_VARIANT = {
    'tabular': 'categorical_crossentropy',
    'image-cnn': 'categorical_crossentropy',
    'image-cnn-catdog': 'categorical_crossentropy',
    'sequence-rnn': 'binary_crossentropy'
}


def get_model(name: str, **kwargs) -> keras.Model:
    """
    Get an (uncompiled) model by variant name.

    Args:
        name: Variant tag
        **kwargs: Arguments passed to model builder

    Returns:
        Keras model
    """
    if name not in MODEL_REGISTRY:
        raise ValueError(f"Unknown model: {name}. Available: {list(MODEL_REGISTRY.keys())}")

    return MODEL_REGISTRY[name](**kwargs)


def compile_model(
    model: keras.Model,
    optimizer: Union[str, keras.optimizers.Optimizer] = 'adam',
    loss: str = 'categorical_crossentropy',
    metrics: Sequence[str] = ('accuracy',)
) -> keras.Model:
    """Compile a model in place and return it."""
    model.compile(optimizer=optimizer, loss=loss, metrics=list(metrics))
    return model


def build_model(spec: ModelSpec) -> keras.Model:
    """
    Build and compile the model for a spec.

    Adam is used for every variant, with the spec's learning rate when set.
    """
    model = get_model(spec.variant, input_shape=spec.input_shape, num_classes=spec.num_classes)

    if spec.learning_rate is not None:
        optimizer = keras.optimizers.Adam(learning_rate=spec.learning_rate)
    else:
        optimizer = keras.optimizers.Adam()

    return compile_model(model, optimizer=optimizer, loss=spec.loss, metrics=['accuracy'])
