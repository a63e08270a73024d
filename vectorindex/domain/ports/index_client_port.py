"""
Port (interface) for the administrative API of a search collection.
Infrastructure adapters (e.g. OpenSearchIndexClient) must implement this interface
and normalize every remote failure to vectorindex.domain.errors.
"""

from abc import ABC, abstractmethod
from typing import Optional

from vectorindex.domain.entities.index_spec import IndexSpec, MetadataField, ObservedIndex


class IIndexClient(ABC):
    @abstractmethod
    def describe(self, endpoint: str, index_name: str) -> Optional[ObservedIndex]:
        """Return the current shape of *index_name*, or None when it does not exist.

        Raises:
            RemoteUnavailable, AuthorizationDenied
        """
        ...

    @abstractmethod
    def create(self, endpoint: str, spec: IndexSpec) -> None:
        """Create the index described by *spec*.

        Raises:
            AlreadyExists, InvalidSpec, RemoteUnavailable, AuthorizationDenied
        """
        ...

    @abstractmethod
    def add_metadata_field(self, endpoint: str, index_name: str, field: MetadataField) -> None:
        """Add one metadata field to the index mapping.

        Raises:
            FieldExists, RemoteUnavailable, AuthorizationDenied
        """
        ...

    @abstractmethod
    def delete(self, endpoint: str, index_name: str) -> None:
        """Delete the index.

        Raises:
            NotFound, RemoteUnavailable, AuthorizationDenied
        """
        ...
