"""Interface shared by the per-entity indexes run by the indexer."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..logger import BoundLogger

if TYPE_CHECKING:
    from ..indexer import ContentIndexer

# Outcomes of Index.run; failures are raised, not returned
INDEXED = "indexed"
ALREADY_INDEXED = "already_indexed"
SKIPPED = "skipped"


class Index(ABC):
    """A computation run by the indexer for every entity in the history log."""

    name: str = "index"

    @abstractmethod
    def run(
        self,
        ctx: BoundLogger,
        indexer: "ContentIndexer",
        entity_type: str,
        entity_id: str,
    ) -> str:
        """
        Index one entity.

        Args:
            ctx: Logger bound to the job's context (worker, index, entity id)
            indexer: Indexer owning the content client and the database
            entity_type: Kind declared by the history entry
            entity_id: Entity id declared by the history entry

        Returns:
            INDEXED, ALREADY_INDEXED or SKIPPED

        Raises:
            Exception: Any failure; it is fatal to this job only
        """
