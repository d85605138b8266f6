"""
K-means seed for the mixture: hard cluster assignment → per-cluster
weight, mean and full (maximum-likelihood) covariance.

Small or empty clusters produce rank-deficient covariances on purpose; the
EM refiner detects those and hands back a corrected point set.
"""
from typing import Optional, Protocol

import numpy as np
import structlog
from sklearn.cluster import KMeans

from timbre.core.mixture import MixtureModel

log = structlog.get_logger()

N_INIT = 10


class Initializer(Protocol):

    def initialize(self, points: np.ndarray, n_components: int) -> MixtureModel: ...


class KMeansInitializer:

    def __init__(self, random_state: Optional[int] = None, n_init: int = N_INIT):
        self.random_state = random_state
        self.n_init       = n_init

    @classmethod
    def from_settings(cls, settings) -> "KMeansInitializer":
        return cls(random_state=settings.RANDOM_STATE)

    def initialize(self, points: np.ndarray, n_components: int) -> MixtureModel:
        X = np.asarray(points, dtype=np.float64)
        if X.ndim != 2 or len(X) == 0:
            raise ValueError(f"points must be a non-empty (n, d) array, got shape {X.shape}")
        n, d = X.shape

        kmeans = KMeans(n_clusters=n_components, random_state=self.random_state, n_init=self.n_init)
        labels = kmeans.fit_predict(X)

        weights     = np.zeros(n_components)
        means       = np.array(kmeans.cluster_centers_, dtype=np.float64)
        covariances = np.zeros((n_components, d, d))

        for j in range(n_components):
            members = X[labels == j]
            weights[j] = len(members) / n
            if len(members) == 0:
                continue
            means[j] = members.mean(axis=0)
            diff = members - means[j]
            covariances[j] = diff.T @ diff / len(members)

        log.info("kmeans_initialized",
                 components=n_components, points=n, dimension=d,
                 cluster_sizes=np.bincount(labels, minlength=n_components).tolist())
        return MixtureModel(weights=weights, means=means, covariances=covariances)
