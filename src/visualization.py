"""
Training report figures.

Plots the epoch log (loss and accuracy curves, with validation curves when
present) next to the held-out confusion matrix, and writes the figure to a
file. Intended for offline reports, not interactive display.
"""

from typing import Optional, Sequence

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from src.models.evaluation import EvaluationResult
from src.models.training import EpochLog


def plot_training_curves(ax_loss, ax_acc, epoch_log: Sequence[EpochLog]) -> None:
    """Draw loss and accuracy curves onto two axes."""
    if not epoch_log:
        ax_loss.text(0.5, 0.5, 'No history', ha='center', va='center')
        ax_acc.text(0.5, 0.5, 'No history', ha='center', va='center')
        return

    epochs = [e.epoch for e in epoch_log]

    ax_loss.plot(epochs, [e.loss for e in epoch_log], label='Train')
    ax_acc.plot(epochs, [e.accuracy for e in epoch_log], label='Train')

    # Validation points only where the slice was non-empty
    val = [e for e in epoch_log if e.has_validation]
    if val:
        ax_loss.plot([e.epoch for e in val], [e.val_loss for e in val], label='Val')
        ax_acc.plot([e.epoch for e in val], [e.val_accuracy for e in val], label='Val')

    for ax, title in ((ax_loss, 'Loss'), (ax_acc, 'Accuracy')):
        ax.set_title(title)
        ax.set_xlabel('Epoch')
        ax.legend()
        ax.grid(True, alpha=0.3)


def plot_confusion_matrix(ax, cm: np.ndarray, class_names: Sequence[str]) -> None:
    """Draw a confusion matrix with per-cell counts."""
    n = len(class_names)
    ax.imshow(cm, cmap='Blues')
    ax.set_xticks(range(n))
    ax.set_yticks(range(n))
    ax.set_xticklabels(class_names)
    ax.set_yticklabels(class_names)
    ax.set_xlabel('Predicted')
    ax.set_ylabel('True')
    ax.set_title('Confusion Matrix')

    for i in range(n):
        for j in range(n):
            color = 'white' if cm[i, j] > cm.max() / 2 else 'black'
            ax.text(j, i, str(cm[i, j]), ha='center', va='center', color=color)


def save_training_report(
    path: str,
    title: str,
    epoch_log: Sequence[EpochLog],
    evaluation: Optional[EvaluationResult] = None,
    class_names: Sequence[str] = ()
) -> str:
    """
    Write a three-panel report: loss, accuracy, confusion matrix.

    Args:
        path: Output image path (format from the extension)
        title: Figure title
        epoch_log: Training epoch log
        evaluation: Held-out evaluation (confusion panel left blank if None)
        class_names: Ordered class names for the confusion matrix axes

    Returns:
        The path written
    """
    fig, axes = plt.subplots(1, 3, figsize=(15, 4.5))

    if evaluation is not None and evaluation.ready:
        fig.suptitle(f'{title}\nTest accuracy: {evaluation.accuracy}%')
    else:
        fig.suptitle(title)

    plot_training_curves(axes[0], axes[1], epoch_log)

    if evaluation is not None and evaluation.confusion is not None:
        plot_confusion_matrix(axes[2], evaluation.confusion, class_names)
    else:
        axes[2].text(0.5, 0.5, 'No evaluation', ha='center', va='center')
        axes[2].axis('off')

    plt.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path
