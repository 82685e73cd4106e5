from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from cytocomp.controls import ControlSet

CHANNELS = ("FITC", "PE")


def synthetic_controls(
    coefficients: np.ndarray,
    intercepts: np.ndarray,
    channels: tuple[str, ...],
    n_events: int = 60,
    seed: int = 7,
) -> ControlSet:
    """Noise-free single-color controls generated from a known bleed model."""

    rng = np.random.default_rng(seed)
    n = len(channels)
    matrices = []
    for ch in range(n):
        true_signal = np.zeros((n, n_events))
        true_signal[ch] = rng.uniform(200.0, 2000.0, size=n_events)
        observed = coefficients @ true_signal + np.asarray(intercepts)[:, np.newaxis]
        matrices.append(observed.T)
    return ControlSet(channels, tuple(matrices))


@pytest.fixture(scope="session")
def known_model() -> tuple[np.ndarray, np.ndarray]:
    coefficients = np.array([[1.0, 0.08], [0.04, 1.0]])
    intercepts = np.array([12.0, 7.0])
    return coefficients, intercepts


@pytest.fixture(scope="session")
def synthetic_control_set(known_model) -> ControlSet:
    coefficients, intercepts = known_model
    return synthetic_controls(coefficients, intercepts, CHANNELS)


@pytest.fixture(scope="session")
def scenario_controls() -> ControlSet:
    return ControlSet.from_mapping(
        {
            "FITC": np.array([[100.0, 5.0], [200.0, 8.0], [150.0, 6.0]]),
            "PE": np.array([[6.0, 110.0], [5.0, 95.0], [7.0, 130.0]]),
        }
    )
