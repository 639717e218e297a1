"""Exception types raised by the QMeans state-abstraction and learning core."""


class QMeansError(Exception):
    """Base class for all QMeans errors."""


class InsufficientDataError(QMeansError, ValueError):
    """Training was requested with fewer samples than the model needs."""


class NotTrainedError(QMeansError, RuntimeError):
    """A projection or resolution was requested before training."""


class AlreadyTrainedError(QMeansError, RuntimeError):
    """A one-time training step was run a second time."""


class EmptyClusterError(QMeansError):
    """A centroid was requested for a group without members."""


class CapacityError(QMeansError):
    """A training sample was added after the basis was frozen or past capacity."""


class LoadError(QMeansError):
    """A persisted value table or codebook is corrupt or incompatible."""
