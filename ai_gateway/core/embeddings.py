"""
Embedding generation and similarity search.

Wraps the provider's embeddings endpoint and provides brute-force nearest
neighbour scoring over an in-memory candidate set.
"""

import logging
from dataclasses import dataclass
from math import sqrt
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import DimensionMismatch, ProviderError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

Vector = Sequence[float]


@dataclass(frozen=True)
class EmbeddingResult:
    """One embedding vector and the tokens attributed to its input."""
    embedding: List[float]
    tokens: int


@dataclass(frozen=True)
class SimilarityMatch:
    """Candidate scored against a query vector."""
    id: Any
    similarity: float


Candidate = Union[Tuple[Any, Vector], Any]


class EmbeddingService:
    """Generates embeddings through the OpenAI client."""

    def __init__(
        self,
        client: Any,
        model: str = DEFAULT_EMBEDDING_MODEL,
        dimensions: Optional[int] = None,
        retry: Optional[RetryPolicy] = None
    ):
        if dimensions is not None and dimensions < 1:
            raise ValueError("dimensions must be >= 1")
        self.client = client
        self.model = model
        self.dimensions = dimensions
        self.retry = retry or RetryPolicy()

    def embed(self, text: str, timeout: Optional[float] = None) -> EmbeddingResult:
        """Embed a single text."""
        return self.embed_batch([text], timeout)[0]

    def embed_batch(
        self,
        texts: Sequence[str],
        timeout: Optional[float] = None
    ) -> List[EmbeddingResult]:
        """Embed several texts in one provider call.

        The provider only reports a total token count for the whole batch, so
        it is split evenly across inputs (the remainder goes to the first
        items). Per-item counts are therefore an approximation; their sum is
        exact.

        Args:
            texts: Input strings
            timeout: Optional request timeout in seconds, forwarded to the provider

        Returns:
            One EmbeddingResult per input, in input order

        Raises:
            ProviderError: If the provider call fails or returns a malformed body
        """
        if not texts:
            return []

        params = {"model": self.model, "input": list(texts)}
        if self.dimensions is not None:
            params["dimensions"] = self.dimensions
        if timeout is not None:
            params["timeout"] = timeout

        response, _ = self.retry.call(
            lambda: self.client.embeddings.create(**params),
            operation="embeddings request",
            log_extra={"model": self.model}
        )

        data = list(response.data)
        if all(isinstance(getattr(item, "index", None), int) for item in data):
            data.sort(key=lambda item: item.index)
        if len(data) != len(texts):
            raise ProviderError(
                f"Embeddings response returned {len(data)} vectors for {len(texts)} inputs"
            )

        total_tokens = int(getattr(response.usage, "total_tokens", 0) or 0)
        shares = apportion_tokens(total_tokens, len(texts))

        return [
            EmbeddingResult(embedding=list(item.embedding), tokens=share)
            for item, share in zip(data, shares)
        ]

    def cosine_similarity(self, a: Vector, b: Vector) -> float:
        return cosine_similarity(a, b)

    def find_similar(
        self,
        query: Vector,
        candidates: Iterable[Candidate],
        top_k: int = 5
    ) -> List[SimilarityMatch]:
        return find_similar(query, candidates, top_k)


def apportion_tokens(total: int, count: int) -> List[int]:
    """Split ``total`` into ``count`` near-equal integer shares that sum to it."""
    if count <= 0:
        return []
    base, remainder = divmod(total, count)
    return [base + (1 if i < remainder else 0) for i in range(count)]


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity of two vectors.

    Raises:
        DimensionMismatch: If the vectors have different lengths
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def find_similar(
    query: Vector,
    candidates: Iterable[Candidate],
    top_k: int = 5
) -> List[SimilarityMatch]:
    """Rank candidates by cosine similarity to the query.

    Full scan followed by a sort; there is no approximate index.

    Args:
        query: Query embedding
        candidates: ``(id, vector)`` pairs, or objects with ``id`` and ``embedding``
        top_k: Maximum number of matches to return

    Returns:
        Matches in descending order of similarity, at most ``top_k`` long
    """
    if top_k <= 0:
        return []

    matches = []
    for candidate in candidates:
        candidate_id, vector = _unpack_candidate(candidate)
        matches.append(SimilarityMatch(id=candidate_id, similarity=cosine_similarity(query, vector)))

    matches.sort(key=lambda match: match.similarity, reverse=True)
    return matches[:top_k]


def _unpack_candidate(candidate: Candidate) -> Tuple[Any, Vector]:
    if isinstance(candidate, tuple):
        return candidate[0], candidate[1]
    if isinstance(candidate, dict):
        return candidate["id"], candidate["embedding"]
    return candidate.id, candidate.embedding
