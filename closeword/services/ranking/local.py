"""Local ranking over the embedding dictionary.

Every dictionary entry is ordered by cosine distance to the secret word's
embedding; a guess's rank is its 1-based position in that ordering.
"""
import asyncio
import logging
import unicodedata
from typing import Callable, Optional

import numpy as np
from sqlalchemy import select

from closeword.config import get_settings
from closeword.models.base import GameMode
from closeword.models.dictionary import DictionaryEntry
from closeword.services.ranking.base import RankingProvider
from closeword.utils.cache import SimpleCache
from closeword.utils.exceptions import RankingUnavailableError, UnknownWordError

logger = logging.getLogger(__name__)


def _dictionary_key(word: str) -> str:
    return unicodedata.normalize("NFC", word).strip().lower()


class DictionaryIndex:
    """In-memory copy of the dictionary with unit-length embeddings."""

    def __init__(self, entry_ids: list[int], words: list[str], embeddings: list[list[float]]):
        self.entry_ids = np.asarray(entry_ids, dtype=np.int64)
        self.words = list(words)
        if embeddings:
            matrix = np.asarray(embeddings, dtype=np.float32)
            if matrix.ndim != 2:
                raise ValueError("dictionary embeddings must share one dimension")
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            self.matrix = matrix / norms
        else:
            self.matrix = np.zeros((0, 0), dtype=np.float32)
        self._position_by_word = {_dictionary_key(w): pos for pos, w in enumerate(self.words)}
        self._position_by_id = {int(entry_id): pos for pos, entry_id in enumerate(self.entry_ids)}

    def __len__(self) -> int:
        return len(self.words)

    def position_of_word(self, word: str) -> Optional[int]:
        return self._position_by_word.get(_dictionary_key(word))

    def position_of_id(self, entry_id: int) -> Optional[int]:
        return self._position_by_id.get(int(entry_id))

    @staticmethod
    def cosine_distances(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
        """Cosine distance of every row of a unit-row ``matrix`` to unit ``vector``."""
        return 1.0 - matrix @ vector

    def rank_table(self, target_position: int) -> np.ndarray:
        """Rank of every entry against the entry at ``target_position``.

        Ties in distance are broken by entry id so ranks are stable, and the
        target itself always takes rank 1.
        """
        distances = self.cosine_distances(self.matrix, self.matrix[target_position]).astype(np.float64)
        distances[target_position] = -np.inf
        order = np.lexsort((self.entry_ids, distances))
        ranks = np.empty(len(order), dtype=np.int64)
        ranks[order] = np.arange(1, len(order) + 1)
        return ranks


class LocalRankingProvider(RankingProvider):
    """Rank guesses against a secret dictionary entry."""

    mode = GameMode.LOCAL

    def __init__(self, session_factory: Callable, cache: Optional[SimpleCache] = None):
        settings = get_settings()
        self._session_factory = session_factory
        self._index: Optional[DictionaryIndex] = None
        self._load_lock = asyncio.Lock()
        self._cache_ttl = settings.local_rank_cache_ttl_seconds
        self.cache = cache if cache is not None else SimpleCache(default_ttl=self._cache_ttl, max_entries=256)

    def target_attribute(self) -> str:
        return "secret_word_id"

    async def get_index(self) -> DictionaryIndex:
        """Load the dictionary once, on first use."""
        if self._index is not None:
            return self._index

        async with self._load_lock:
            if self._index is None:
                self._index = await self._load_index()
        return self._index

    async def _load_index(self) -> DictionaryIndex:
        async with self._session_factory() as db:
            result = await db.execute(
                select(DictionaryEntry.entry_id, DictionaryEntry.word, DictionaryEntry.embedding)
                .order_by(DictionaryEntry.entry_id)
            )
            rows = result.all()

        try:
            index = DictionaryIndex(
                [row.entry_id for row in rows],
                [row.word for row in rows],
                [list(row.embedding) for row in rows],
            )
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to build dictionary index: {e}")
            raise RankingUnavailableError("dictionary is malformed") from e

        logger.info(f"Loaded dictionary index with {len(index)} entries")
        return index

    def reload(self) -> None:
        """Forget the loaded dictionary and every cached rank table."""
        self._index = None
        self.cache.clear()

    async def _rank_table(self, index: DictionaryIndex, target_id: int) -> np.ndarray:
        cache_key = f"ranks:{target_id}"
        table = self.cache.get(cache_key)
        if table is not None:
            return table

        target_position = index.position_of_id(target_id)
        if target_position is None:
            logger.error(f"Secret word {target_id} is missing from the dictionary index")
            raise RankingUnavailableError(f"unknown secret word {target_id}")

        table = index.rank_table(target_position)
        self.cache.set(cache_key, table, ttl=self._cache_ttl)
        logger.debug(f"Built rank table for secret word {target_id}")
        return table

    async def rank(self, word: str, target) -> int:
        index = await self.get_index()
        table = await self._rank_table(index, target)

        position = index.position_of_word(word)
        if position is None:
            raise UnknownWordError(f"'{word}' is not in the dictionary")
        return int(table[position])
