"""Service for managing words and word collections."""
import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from vocadrill.models.base import storage_operation
from vocadrill.models.models import Word, WordCollection

logger = logging.getLogger(__name__)


class WordService:
    """Service for managing words in the system."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_collection(self, collection_id: int) -> Optional[WordCollection]:
        """Get a collection by its ID."""
        with storage_operation(self.db, "get_collection"):
            return self.db.get(WordCollection, collection_id)

    def create_collection(self, name: str) -> WordCollection:
        """Create a new, empty word collection."""
        with storage_operation(self.db, "create_collection"):
            collection = WordCollection(name=name)
            self.db.add(collection)
            self.db.commit()
            self.db.refresh(collection)
        logger.info("Created collection %s (%s)", collection.id, name)
        return collection

    def get_word(self, word_id: int) -> Optional[Word]:
        """Get a word by its ID."""
        with storage_operation(self.db, "get_word"):
            return self.db.get(Word, word_id)

    def get_words(self, word_ids: Iterable[int]) -> List[Word]:
        """Get the words with the given IDs, skipping unknown ones."""
        word_ids = list(word_ids)
        if not word_ids:
            return []
        with storage_operation(self.db, "get_words"):
            return self.db.query(Word).filter(Word.id.in_(word_ids)).order_by(Word.id).all()

    def get_words_by_collection(self, collection_id: Optional[int] = None) -> List[Word]:
        """Get the words of a collection, or every word when no collection is given."""
        with storage_operation(self.db, "get_words_by_collection"):
            query = self.db.query(Word)
            if collection_id is not None:
                query = query.filter(Word.collection_id == collection_id)
            return query.order_by(Word.id).all()

    def get_existing_word_ids(self, word_ids: Iterable[int]) -> Set[int]:
        """Return the subset of word_ids that still exist."""
        word_ids = list(word_ids)
        if not word_ids:
            return set()
        with storage_operation(self.db, "get_existing_word_ids"):
            rows = self.db.query(Word.id).filter(Word.id.in_(word_ids)).all()
        return {row[0] for row in rows}

    def add_word(
        self,
        collection_id: int,
        text: str,
        meaning: str,
        reading: Optional[str] = None,
        difficulty: Optional[int] = None,
    ) -> Word:
        """Add a word to a collection."""
        if difficulty is not None and not 1 <= difficulty <= 5:
            raise ValueError(f"Difficulty must be between 1 and 5, got {difficulty}")

        with storage_operation(self.db, "add_word"):
            word = Word(
                collection_id=collection_id,
                text=text,
                reading=reading,
                meaning=meaning,
                difficulty=difficulty,
            )
            self.db.add(word)
            self.db.commit()
            self.db.refresh(word)
        return word

    def add_words(self, collection_id: int, entries: Iterable[tuple]) -> List[Word]:
        """Add several (text, meaning) pairs to a collection at once."""
        with storage_operation(self.db, "add_words"):
            words = [
                Word(collection_id=collection_id, text=text, meaning=meaning)
                for text, meaning in entries
            ]
            self.db.add_all(words)
            self.db.commit()
        logger.info("Added %d words to collection %s", len(words), collection_id)
        return words

    def delete_word(self, word_id: int) -> bool:
        """Delete a word together with its mastery record and review logs."""
        word = self.get_word(word_id)
        if not word:
            return False

        with storage_operation(self.db, "delete_word"):
            self.db.delete(word)
            self.db.commit()
        logger.info("Deleted word %s", word_id)
        return True

    def get_word_count(self, collection_id: Optional[int] = None) -> int:
        """Get the count of words, optionally within one collection."""
        with storage_operation(self.db, "get_word_count"):
            query = self.db.query(Word)
            if collection_id is not None:
                query = query.filter(Word.collection_id == collection_id)
            return query.count()
