"""
snembed: stochastic neighbor embedding and metric MDS by gradient descent.

    >>> from snembed import NeighborEmbedding
    >>> Y = NeighborEmbedding(method="tsne", perplexity=10).fit_transform(X)

Lower-level pieces, for building your own pipeline:

    methods      what to optimize (ASNE, SSNE, t-SNE, NeRV, MMDS, Sammon, ...)
    inputs       input probabilities, single or multiscale perplexity
    optimizer    how to optimize (gradient/direction/step size/update strategies)
    embed        the loop that ties them together
"""

from .embed import EmbeddingResult, NeighborEmbedding, embed
from .exceptions import ConfigurationError, ConvergenceWarning
from .inputs import (DistanceInput, InputData, MultiscaleProbabilityBuilder,
                     ProbabilityBuilder)
from .methods import METHODS, EmbeddingMethod, OutputData, get_method
from .optimizer import Optimizer, bold_nag_opt, make_opt, tsne_opt
from .perplexity import d_to_p_perp_bisect

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ConvergenceWarning",
    "DistanceInput",
    "EmbeddingMethod",
    "EmbeddingResult",
    "InputData",
    "METHODS",
    "MultiscaleProbabilityBuilder",
    "NeighborEmbedding",
    "Optimizer",
    "OutputData",
    "ProbabilityBuilder",
    "bold_nag_opt",
    "d_to_p_perp_bisect",
    "embed",
    "get_method",
    "make_opt",
    "tsne_opt",
]
