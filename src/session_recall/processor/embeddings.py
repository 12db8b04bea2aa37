"""Sentence-transformers embedding capability.

The model is loaded on first use and shared by indexing and search; both
sides must encode with the same model or their vectors are not comparable.
"""

from __future__ import annotations

from threading import Lock
from typing import TYPE_CHECKING

from session_recall.config import EmbeddingConfig
from session_recall.errors import EmbeddingCapabilityError
from session_recall.logging import get_logger

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = get_logger("embeddings")


class Embedder:
    """Lazily-initialized handle to a sentence-transformers model."""

    def __init__(self, config: EmbeddingConfig) -> None:
        self._config = config
        self._model: SentenceTransformer | None = None
        self._lock = Lock()

    @property
    def model_name(self) -> str:
        return self._config.model

    @property
    def dimensions(self) -> int:
        return self._config.dimensions

    def _ensure_model(self) -> SentenceTransformer:
        with self._lock:
            if self._model is None:
                try:
                    from sentence_transformers import SentenceTransformer

                    self._model = SentenceTransformer(self._config.model, device=self._config.device)
                except Exception as e:
                    raise EmbeddingCapabilityError(
                        f"Failed to load embedding model {self._config.model}: {e}",
                        {"model": self._config.model},
                    ) from e
                logger.info(
                    "Loaded embedding model: model=%s device=%s",
                    self._config.model,
                    self._config.device,
                )
            return self._model

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Encode texts into normalized vectors.

        Raises:
            EmbeddingCapabilityError: If the model cannot be loaded or encoding fails
        """
        if not texts:
            return []

        model = self._ensure_model()
        try:
            vectors = model.encode(
                texts,
                normalize_embeddings=True,
                show_progress_bar=False,
                convert_to_numpy=True,
            )
        except Exception as e:
            raise EmbeddingCapabilityError(f"Embedding failed: {e}", {"model": self._config.model}) from e

        result = [[float(x) for x in vector] for vector in vectors]
        for vector in result:
            if len(vector) != self._config.dimensions:
                raise EmbeddingCapabilityError(
                    f"Model {self._config.model} produced {len(vector)} dimensions, "
                    f"expected {self._config.dimensions}",
                    {"model": self._config.model},
                )
        return result

    def embed(self, text: str) -> list[float]:
        """Encode a single text into a normalized vector."""
        return self.embed_batch([text])[0]
