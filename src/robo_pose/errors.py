"""
Error types for the pose estimation core.

Two classes of failure are distinguished:

- Configuration errors (CalibrationMisconfiguration) are programming errors
  detected when models or filters are constructed. They are fatal.
- Numerical faults (SingularCovarianceError) occur during a single
  predict/update step. The filter core catches them, rejects the step and
  reports a status to the caller while preserving the prior estimate.
"""

import numpy as np


class CalibrationMisconfiguration(ValueError):
    """Offset or noise parameters are inconsistent with declared dimensions."""


class SingularCovarianceError(np.linalg.LinAlgError):
    """Innovation or state covariance could not be factorised."""
