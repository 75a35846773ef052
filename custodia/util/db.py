"""Database model utilities for custodia."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar, final

from django.db import models

if TYPE_CHECKING:
    from typing import NoReturn

T = TypeVar('T', bound=models.Model)


class RecordDeletionForbiddenError(Exception):
    """Raised if a retained record is about to be deleted from the database."""

    def __init__(self, model_name: str) -> None:
        """Initializes the RecordDeletionForbiddenError for the given model name."""
        super().__init__(f'{model_name} records are retained and cannot be deleted. Deactivate them instead.')


class RetainedRecordQuerySet(models.QuerySet[T]):
    """Queryset that refuses bulk deletes.

    Retained records stay in the database for auditing, state changes are expressed through flags.
    """

    def delete(self, *args: Any, **kwargs: Any) -> NoReturn:
        """Refuses to delete the records in this queryset."""
        del args, kwargs
        raise RecordDeletionForbiddenError(self.model.__name__)


class RetainedRecordManager(models.Manager[T]):
    """Default manager for RetainedRecordModel.

    It ensures the RetainedRecordQuerySet is the default queryset.
    """

    def get_queryset(self) -> RetainedRecordQuerySet[T]:
        """Return the queryset that refuses deletes."""
        return RetainedRecordQuerySet(self.model, using=self._db)


class RetainedRecordModel(models.Model):
    """Abstract model whose rows are never hard-deleted, neither individually nor in bulk."""

    objects: RetainedRecordManager[Any] = RetainedRecordManager()

    class Meta:
        """Meta options for the RetainedRecordModel."""
        abstract = True

    @final
    def delete(self, *args: Any, **kwargs: Any) -> NoReturn:
        """Refuses to delete the record."""
        del args, kwargs
        raise RecordDeletionForbiddenError(type(self).__name__)
