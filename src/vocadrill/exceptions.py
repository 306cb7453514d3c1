"""Exception classes raised by the vocabulary engine."""
from typing import Any, Dict, Optional


class VocadrillError(Exception):
    """Base exception for the engine."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(VocadrillError):
    """A requested entity does not exist."""
    pass


class CollectionNotFoundError(NotFoundError):
    """The word collection is absent from the store."""

    def __init__(self, collection_id: int):
        super().__init__(f"Collection {collection_id} not found", {"collection_id": collection_id})
        self.collection_id = collection_id


class WordNotFoundError(NotFoundError):
    """The word is absent from the store."""

    def __init__(self, word_id: int):
        super().__init__(f"Word {word_id} not found", {"word_id": word_id})
        self.word_id = word_id


class ReviewPlanNotFoundError(NotFoundError):
    """No review plan matches the collection (and plan id, if given)."""

    def __init__(self, collection_id: int, plan_id: Optional[int] = None):
        message = f"No review plan for collection {collection_id}"
        if plan_id is not None:
            message += f" with id {plan_id}"
        super().__init__(message, {"collection_id": collection_id, "plan_id": plan_id})
        self.collection_id = collection_id
        self.plan_id = plan_id


class StorageUnavailableError(VocadrillError):
    """The entity store failed to complete a round trip."""
    pass
