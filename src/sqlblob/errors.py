"""
Exception classes for sqlblob.

This module defines the exception hierarchy for blob storage errors.
Structural errors (malformed addresses) are ``ValueError`` subclasses; every
failure to resolve a well-formed address is a ``BlobAccessError``.
"""

from __future__ import annotations


# --- Top Level ---
class SqlBlobError(Exception):
    """Base class for errors specific to sqlblob internal operation."""

    def suggest(self, *args: object) -> "SqlBlobError":
        """
        Regenerate the exception with additional arguments.

        Parameters
        ----------
        *args : object
            Additional arguments to append to the exception.

        Returns
        -------
        SqlBlobError
            A new exception of the same type with the additional arguments.
        """
        return self.__class__(*(self.args + args))


# --- Second Level ---
class MalformedAddressError(SqlBlobError, ValueError):
    """A blob address or text id does not have a valid structure."""


class BlobAccessError(SqlBlobError):
    """A well-formed blob address could not be resolved to data."""


class EnvelopeError(SqlBlobError):
    """A payload flagged as an object envelope could not be parsed."""


class LostConnectionError(SqlBlobError):
    """Loss of server connection."""


class QueryError(SqlBlobError):
    """Errors arising from queries to the database."""


# --- Third Level: BlobAccessErrors ---
class BadBlobError(BlobAccessError):
    """The blob is known to be bad, or its address can never resolve."""


class ExternalStoreError(BlobAccessError):
    """The external store could not serve or accept a blob."""


class RowStoreError(BlobAccessError):
    """The row store could not serve or accept a blob."""


# --- Third Level: QueryErrors ---
class QuerySyntaxError(QueryError):
    """Errors arising from incorrect query syntax."""


class AccessDeniedError(QueryError):
    """User access error: insufficient privileges."""


class MissingTableError(QueryError):
    """Query on a table that has not been declared."""


class DuplicateError(QueryError):
    """Integrity error caused by a duplicate entry into a unique key."""
