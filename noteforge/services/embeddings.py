"""Local sentence-transformer embeddings with lazy, retry-bounded loading."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from noteforge.utils.exceptions import EmbeddingFailure
from noteforge.utils.vector import EMBEDDING_DIMENSIONS, coerce_embedding

logger = logging.getLogger(__name__)

ModelLoader = Callable[[str, str | None], Any]


def select_device() -> str:
    """Pick the best available torch device."""
    import torch

    if torch.cuda.is_available():
        return "cuda"
    if torch.backends.mps.is_available():
        return "mps"
    return "cpu"


def load_sentence_transformer(model_name: str, device: str | None = None) -> Any:
    """Load a SentenceTransformer model onto ``device`` (auto-selected if None)."""
    from sentence_transformers import SentenceTransformer

    if device is None:
        device = select_device()
    logger.info(f"Loading embedding model {model_name} on {device}")
    return SentenceTransformer(model_name, device=device)


class EmbeddingProvider:
    """
    Wraps the local embedding model.

    The model is loaded on first use. Concurrent callers share one in-flight
    initialization; a failed load is retried a bounded number of times with
    exponential backoff and then remembered as unavailable until
    :meth:`reset` is called. :meth:`embed` never raises.
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        device: str | None = None,
        dimensions: int = EMBEDDING_DIMENSIONS,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        loader: ModelLoader | None = None,
    ):
        """
        Initialize the embedding provider.

        Args:
            model_name: Sentence-transformers model to load
            device: Torch device, auto-detected when None
            dimensions: Expected vector width
            max_retries: Extra load attempts after the first failure
            retry_delay: Base delay in seconds, doubled per retry
            loader: Callable returning a model with an ``encode`` method
        """
        self.model_name = model_name
        self.device = device
        self.dimensions = dimensions
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._loader = loader or load_sentence_transformer
        self._model: Any = None
        self._init_task: asyncio.Task | None = None
        self.load_attempts = 0

    @property
    def ready(self) -> bool:
        return self._model is not None

    @property
    def failed(self) -> bool:
        return (
            self._init_task is not None
            and self._init_task.done()
            and not self._init_task.cancelled()
            and self._init_task.result() is None
        )

    async def initialize(self) -> Any:
        """
        Load the model once, sharing the attempt between concurrent callers.

        Returns:
            The loaded model, or None if every attempt failed
        """
        if self._model is not None:
            return self._model
        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._load_with_retry())
        return await asyncio.shield(self._init_task)

    async def _load_with_retry(self) -> Any:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            self.load_attempts += 1
            try:
                model = await asyncio.to_thread(self._loader, self.model_name, self.device)
                self._model = model
                logger.info(f"Embedding model {self.model_name} ready")
                return model
            except Exception as e:
                if attempt + 1 >= attempts:
                    logger.error(
                        f"Embedding model failed to load after {attempts} attempts: {e}"
                    )
                    return None
                delay = self.retry_delay * (2**attempt)
                logger.warning(
                    f"Embedding model load failed (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)
        return None

    async def embed(self, text: str) -> list[float] | None:
        """
        Generate a vector embedding for ``text``.

        Returns:
            A list of exactly ``dimensions`` floats, or None when the model
            is unavailable or produced something unusable
        """
        try:
            return await self._embed(text)
        except EmbeddingFailure as e:
            logger.warning(f"Embedding unavailable: {e.detail}")
            return None
        except Exception as e:
            logger.warning(f"Embedding failed: {e}")
            return None

    async def _embed(self, text: str) -> list[float]:
        model = await self.initialize()
        if model is None:
            raise EmbeddingFailure("Embedding model is not loaded")
        raw = await asyncio.to_thread(model.encode, text, normalize_embeddings=True)
        vector = coerce_embedding(raw, self.dimensions)
        if vector is None:
            raise EmbeddingFailure(
                f"Model returned a malformed vector (expected {self.dimensions} values)"
            )
        return vector

    def reset(self) -> None:
        """Forget the loaded model and any failed load so the next call retries."""
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._init_task = None
        self._model = None

    async def aclose(self) -> None:
        self.reset()
