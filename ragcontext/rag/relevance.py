"""Distance-threshold filtering of store results."""

from typing import Iterable, List

from ragcontext.types import Document, QueryResult, RelevancePolicy


def filter_results(
    results: Iterable[QueryResult],
    threshold_distance: float,
    max_results: int,
) -> List[Document]:
    """
    Keep results closer than ``threshold_distance``, at most ``max_results``.

    ``results`` must already be sorted by ascending distance; the order is
    kept as-is. An empty list means "no relevant context", not an error.
    """
    if threshold_distance <= 0:
        raise ValueError(f"threshold_distance must be positive, got {threshold_distance}")
    if max_results < 0:
        raise ValueError(f"max_results must not be negative, got {max_results}")

    accepted: List[Document] = []
    if max_results == 0:
        return accepted

    for result in results:
        if result.distance < threshold_distance:
            accepted.append(result.document)
            if len(accepted) >= max_results:
                break
    return accepted


class RelevanceFilter:
    """``filter_results`` bound to a ``RelevancePolicy``."""

    def __init__(self, policy: RelevancePolicy) -> None:
        self.policy = policy

    def apply(self, results: Iterable[QueryResult]) -> List[Document]:
        return filter_results(results, self.policy.threshold_distance, self.policy.max_results)
