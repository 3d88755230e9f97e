"""
Covariance representations for the Extended Kalman Filter.

Two interchangeable strategies share one contract:

StandardCovariance:
    Maintains the full covariance P.
        Prediction:  P⁻ = F P Fᵀ + W Q Wᵀ
        Update:      P⁺ = (I - KH) P⁻ (I - KH)ᵀ + K R̃ Kᵀ     (Joseph form)
    with R̃ = V R Vᵀ and K = P⁻Hᵀ S⁻¹ computed from a Cholesky factor of the
    innovation covariance S = H P⁻ Hᵀ + R̃.

SquareRootCovariance:
    Maintains a lower-triangular factor L with P = L Lᵀ and non-negative
    diagonal. Both steps are QR array algorithms, so P is never formed
    explicitly and never needs re-symmetrization:

        Prediction:  [F L, W Q^½]  ──QR──▶  [L⁻, 0]

        Update:      ⎡R̃^½   H L⎤  ──QR──▶  ⎡S^½  0 ⎤
                     ⎣ 0     L ⎦           ⎣ K̄   L⁺⎦

    where K = K̄ S^-½ and L⁺ L⁺ᵀ = P⁻ - K S Kᵀ.

For the same inputs both strategies produce the same P to numerical
tolerance. Updates either commit completely or raise SingularCovarianceError
without touching the stored covariance.

Singularity Test:
    Both strategies reduce S to its lower-triangular factor S^½ and apply the
    same relative pivot test to it:

        min |diag(S^½)| <= τ · max |diag(S^½)|   ⇒   singular

    The squared pivot ratio bounds 1/κ(S), so with τ = 1e-7 an S whose
    condition number exceeds ~1e14 is rejected by either representation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np
import scipy.linalg

from ..config import CovarianceForm
from ..errors import SingularCovarianceError

logger = logging.getLogger(__name__)

# Relative pivot size of S^½ below which S is singular to working precision
_PIVOT_TOLERANCE = 1e-7


def square_root(matrix: np.ndarray) -> np.ndarray:
    """
    Any A with A Aᵀ = matrix, for a symmetric PSD matrix.

    Uses Cholesky when the matrix is positive definite and falls back to an
    eigendecomposition (negative round-off eigenvalues clipped to zero) for
    semi-definite input such as a zero noise matrix.
    """
    try:
        return np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError:
        eigenvals, eigenvecs = np.linalg.eigh(0.5 * (matrix + matrix.T))
        return eigenvecs * np.sqrt(np.clip(eigenvals, 0.0, None))


def triangularize(pre_array: np.ndarray) -> np.ndarray:
    """
    Lower-triangular L (n x n) with L Lᵀ = A Aᵀ for an n x k array A, k >= n.

    Computed from the QR decomposition Aᵀ = Q R, so A Q = Rᵀ. Column signs
    are flipped so the diagonal is non-negative.
    """
    _, upper = scipy.linalg.qr(pre_array.T, mode='economic')
    lower = upper.T
    signs = np.sign(np.diag(lower))
    signs[signs == 0] = 1.0
    return lower * signs


def lower_triangular_factor(matrix: np.ndarray) -> np.ndarray:
    """Lower-triangular factor of a PSD matrix (singular input allowed)."""
    return triangularize(square_root(np.asarray(matrix, dtype=float)))


class CovarianceStrategy(ABC):
    """
    Common contract for covariance representations.

    Attributes:
        size: State dimension
    """

    form: CovarianceForm

    def __init__(self, initial_covariance: np.ndarray):
        initial_covariance = np.asarray(initial_covariance, dtype=float)
        if initial_covariance.ndim != 2 or initial_covariance.shape[0] != initial_covariance.shape[1]:
            raise ValueError(f"Covariance must be square, got shape {initial_covariance.shape}")
        self.size = initial_covariance.shape[0]
        self.reset(initial_covariance)

    @abstractmethod
    def reset(self, covariance: np.ndarray) -> None:
        """Replace the stored covariance."""

    @property
    @abstractmethod
    def matrix(self) -> np.ndarray:
        """Copy of the covariance matrix P."""

    @property
    @abstractmethod
    def factor(self) -> np.ndarray:
        """Lower-triangular L with P = L Lᵀ."""

    @abstractmethod
    def predict(self, F: np.ndarray, W: np.ndarray, Q: np.ndarray) -> None:
        """Propagate through the linearized process model."""

    @abstractmethod
    def innovation_factor(self, H: np.ndarray, V: np.ndarray, R: np.ndarray) -> np.ndarray:
        """
        Lower-triangular S^½ of S = H P Hᵀ + V R Vᵀ without updating.

        Raises:
            SingularCovarianceError: If S is singular to working precision
        """

    @abstractmethod
    def update(self, H: np.ndarray, V: np.ndarray, R: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Measurement update of the covariance.

        Returns:
            Tuple (K, S^½) of Kalman gain and lower-triangular factor of the
            innovation covariance

        Raises:
            SingularCovarianceError: If S cannot be factorised; the stored
                covariance is left unchanged
        """

    @abstractmethod
    def is_valid(self, tolerance: float = 1e-9) -> bool:
        """Check the representation invariant (finite, PSD / valid factor)."""

    def innovation_covariance(self, H: np.ndarray, V: np.ndarray, R: np.ndarray) -> np.ndarray:
        """S = H P Hᵀ + V R Vᵀ."""
        S_sqrt = self.innovation_factor(H, V, R)
        return S_sqrt @ S_sqrt.T

    def condition_number(self) -> float:
        """
        Condition number κ(P) = σ_max / σ_min.

        Returns inf for singular or non-finite covariance.
        """
        P = self.matrix
        if not np.all(np.isfinite(P)):
            return float('inf')
        singular_values = np.linalg.svd(P, compute_uv=False)
        if singular_values[-1] <= 0.0:
            return float('inf')
        return float(singular_values[0] / singular_values[-1])

    def uncertainty(self) -> np.ndarray:
        """Standard deviations of all state components."""
        return np.sqrt(np.clip(np.diag(self.matrix), 0.0, None))


def _check_innovation_factor(S_sqrt: np.ndarray) -> np.ndarray:
    """Apply the shared relative pivot test to a lower-triangular S^½."""
    if not np.all(np.isfinite(S_sqrt)):
        raise SingularCovarianceError("Innovation covariance factor contains NaN or infinite values")
    pivots = np.abs(np.diag(S_sqrt))
    if pivots.min() <= _PIVOT_TOLERANCE * max(pivots.max(), np.finfo(float).tiny):
        raise SingularCovarianceError(
            f"Innovation covariance is numerically singular "
            f"(pivot ratio {pivots.min() / max(pivots.max(), np.finfo(float).tiny):.1e})")
    return S_sqrt


class StandardCovariance(CovarianceStrategy):
    """Full covariance matrix with Joseph-form updates."""

    form = CovarianceForm.STANDARD

    def reset(self, covariance: np.ndarray) -> None:
        covariance = np.asarray(covariance, dtype=float)
        if covariance.shape != (self.size, self.size):
            raise ValueError(f"Covariance shape must be ({self.size}, {self.size})")
        self._matrix = 0.5 * (covariance + covariance.T)

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix.copy()

    @property
    def factor(self) -> np.ndarray:
        return lower_triangular_factor(self._matrix)

    def predict(self, F: np.ndarray, W: np.ndarray, Q: np.ndarray) -> None:
        P = F @ self._matrix @ F.T + W @ Q @ W.T
        self._matrix = 0.5 * (P + P.T)

    def innovation_factor(self, H: np.ndarray, V: np.ndarray, R: np.ndarray) -> np.ndarray:
        S = H @ self._matrix @ H.T + V @ R @ V.T
        S = 0.5 * (S + S.T)
        if not np.all(np.isfinite(S)):
            raise SingularCovarianceError("Innovation covariance contains NaN or infinite values")
        try:
            c, _ = scipy.linalg.cho_factor(S, lower=True, check_finite=False)
        except np.linalg.LinAlgError as exc:
            raise SingularCovarianceError(f"Innovation covariance is not positive definite: {exc}") from exc
        return _check_innovation_factor(np.tril(c))

    def update(self, H: np.ndarray, V: np.ndarray, R: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        S_sqrt = self.innovation_factor(H, V, R)

        # K = P Hᵀ S⁻¹ = (S⁻¹ H P)ᵀ since S and P are symmetric
        K = scipy.linalg.cho_solve((S_sqrt, True), H @ self._matrix, check_finite=False).T

        R_eff = V @ R @ V.T
        I_KH = np.eye(self.size) - K @ H
        P = I_KH @ self._matrix @ I_KH.T + K @ R_eff @ K.T
        if not np.all(np.isfinite(P)):
            raise SingularCovarianceError("Covariance update produced non-finite values")

        self._matrix = 0.5 * (P + P.T)
        return K, S_sqrt

    def is_valid(self, tolerance: float = 1e-9) -> bool:
        P = self._matrix
        if not np.all(np.isfinite(P)):
            return False
        scale = max(1.0, float(np.max(np.abs(P))))
        if not np.allclose(P, P.T, atol=tolerance * scale):
            return False
        return bool(np.min(np.linalg.eigvalsh(P)) >= -tolerance * scale)


class SquareRootCovariance(CovarianceStrategy):
    """Lower-triangular covariance square root with QR-based updates."""

    form = CovarianceForm.SQUARE_ROOT

    def reset(self, covariance: np.ndarray) -> None:
        covariance = np.asarray(covariance, dtype=float)
        if covariance.shape != (self.size, self.size):
            raise ValueError(f"Covariance shape must be ({self.size}, {self.size})")
        self._factor = lower_triangular_factor(covariance)

    @property
    def matrix(self) -> np.ndarray:
        return self._factor @ self._factor.T

    @property
    def factor(self) -> np.ndarray:
        return self._factor.copy()

    def predict(self, F: np.ndarray, W: np.ndarray, Q: np.ndarray) -> None:
        pre_array = np.hstack([F @ self._factor, W @ square_root(Q)])
        self._factor = triangularize(pre_array)

    def innovation_factor(self, H: np.ndarray, V: np.ndarray, R: np.ndarray) -> np.ndarray:
        # Top block row of the update array: [R̃^½, H L] ──QR──▶ [S^½, 0]
        pre_array = np.hstack([square_root(V @ R @ V.T), H @ self._factor])
        if not np.all(np.isfinite(pre_array)):
            raise SingularCovarianceError("Innovation pre-array contains NaN or infinite values")
        return _check_innovation_factor(triangularize(pre_array))

    def update(self, H: np.ndarray, V: np.ndarray, R: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        m = H.shape[0]
        n = self.size
        R_sqrt = square_root(V @ R @ V.T)

        pre_array = np.zeros((m + n, m + n))
        pre_array[:m, :m] = R_sqrt
        pre_array[:m, m:] = H @ self._factor
        pre_array[m:, m:] = self._factor
        if not np.all(np.isfinite(pre_array)):
            raise SingularCovarianceError("Update pre-array contains NaN or infinite values")

        post_array = triangularize(pre_array)
        S_sqrt = _check_innovation_factor(post_array[:m, :m].copy())
        K_bar = post_array[m:, :m]

        # K S^½ = K̄  ⇔  (S^½)ᵀ Kᵀ = K̄ᵀ
        K = scipy.linalg.solve_triangular(S_sqrt, K_bar.T, lower=True, trans='T',
                                          check_finite=False).T
        if not np.all(np.isfinite(K)):
            raise SingularCovarianceError("Kalman gain is not finite")

        self._factor = post_array[m:, m:].copy()
        return K, S_sqrt

    def is_valid(self, tolerance: float = 1e-9) -> bool:
        L = self._factor
        if not np.all(np.isfinite(L)):
            return False
        if not np.allclose(L, np.tril(L), atol=0.0):
            return False
        return bool(np.all(np.diag(L) >= 0.0))


def create_covariance(form: CovarianceForm, initial_covariance: np.ndarray) -> CovarianceStrategy:
    """Build the covariance strategy selected by ``form``."""
    strategies = {
        CovarianceForm.STANDARD: StandardCovariance,
        CovarianceForm.SQUARE_ROOT: SquareRootCovariance,
    }
    strategy = strategies[CovarianceForm(form)](initial_covariance)
    logger.debug(f"Created {type(strategy).__name__} for {strategy.size}-dimensional state")
    return strategy
