"""
Configuration of sqlblob, using pydantic-settings.

Every field can be set from the environment with the ``SQLBLOB_`` prefix, e.g.
``SQLBLOB_HOST`` or ``SQLBLOB_COMPRESS_BLOBS``. ``config`` offers dict-style
access with dot-separated keys and is initialised from ``sqlblob_config.json``
in the working directory, or else from ``~/.sqlblob_config.json``.
"""

import codecs
import collections.abc
import json
import os
import pprint
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import SqlBlobError
from .logging import logger

LOCALCONFIG = "sqlblob_config.json"
GLOBALCONFIG = ".sqlblob_config.json"
DEFAULT_CACHE_EXPIRY = 7 * 24 * 3600  # one week

# keys of external store specs per protocol: (required, optional)
STORE_SPEC_KEYS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "file": (("protocol", "location"), ()),
    "memory": (("protocol",), ("location",)),
    "s3": (("protocol", "endpoint", "bucket", "access_key", "secret_key"), ("location", "secure")),
    "gcs": (("protocol", "bucket"), ("location", "token", "project")),
    "azure": (("protocol", "container"), ("location", "account_name", "account_key", "connection_string")),
}


class DatabaseSettings(BaseSettings):
    """Connection to the server holding the text table"""

    host: str = "localhost"
    port: int = 3306
    user: Optional[str] = None
    password: Optional[str] = None
    db_name: Optional[str] = None
    reconnect: bool = True
    use_tls: Optional[bool] = None

    model_config = SettingsConfigDict(env_prefix="SQLBLOB_", case_sensitive=False, extra="allow")


class BlobStoreSettings(BaseSettings):
    """Default policy of a blob store; each store keeps its own copy"""

    compress_blobs: bool = False
    legacy_encoding: Optional[str] = None
    cache_expiry: int = DEFAULT_CACHE_EXPIRY
    use_external_store: bool = False
    text_table: str = "text"

    model_config = SettingsConfigDict(
        env_prefix="SQLBLOB_",
        case_sensitive=False,
        extra="allow",
        validate_assignment=True,
    )

    @field_validator("legacy_encoding", mode="before")
    @classmethod
    def no_legacy_encoding(cls, v: Any) -> Any:
        return v or None

    @field_validator("legacy_encoding")
    @classmethod
    def known_legacy_encoding(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            try:
                codecs.lookup(v)
            except LookupError:
                raise ValueError(f"Unknown legacy encoding {v!r}") from None
        return v

    @field_validator("cache_expiry")
    @classmethod
    def non_negative_expiry(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cache_expiry must be >= 0")
        return v


class SqlBlobSettings(BaseSettings):
    """All settings of sqlblob"""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    blobs: BlobStoreSettings = Field(default_factory=BlobStoreSettings)
    loglevel: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias=AliasChoices("loglevel", "SQLBLOB_LOG_LEVEL"),
    )
    # external stores by URL scheme, each a spec checked by ConfigWrapper.get_store_spec
    stores: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    external_write_locations: List[str] = Field(default_factory=list)
    # directory of the FileCache
    cache: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="SQLBLOB_",
        case_sensitive=False,
        extra="allow",
        validate_assignment=True,
    )

    @field_validator("cache", mode="before")
    @classmethod
    def path_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, os.PathLike) else v

    @field_validator("loglevel", mode="before")
    @classmethod
    def upper_loglevel(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("loglevel")
    @classmethod
    def apply_loglevel(cls, v: str) -> str:
        logger.setLevel(v)
        return v


class ConfigWrapper(collections.abc.MutableMapping):
    """
    Dict-style view of SqlBlobSettings with dot-separated keys, e.g.
    ``config["blobs.compress_blobs"]``.

    Keys that are not settings fields are kept as extras, so configuration files
    may carry keys of the application using sqlblob.
    """

    def __init__(self, settings: SqlBlobSettings):
        self._settings = settings
        self._extra: Dict[str, Any] = {}

    @property
    def settings(self) -> SqlBlobSettings:
        return self._settings

    def _locate(self, key: str) -> Optional[Tuple[BaseSettings, str]]:
        """Model and field name a key refers to, or None for extra keys."""
        *path, name = key.split(".")
        model: Any = self._settings
        for part in path:
            if part not in type(model).model_fields:
                return None
            model = getattr(model, part)
            if not isinstance(model, BaseSettings):
                return None
        if name not in type(model).model_fields:
            return None
        return model, name

    def __getitem__(self, key: str) -> Any:
        if key in self._extra:
            return self._extra[key]
        location = self._locate(key)
        if location is None:
            raise KeyError(f"Key '{key}' not found")
        return getattr(*location)

    def __setitem__(self, key: str, value: Any) -> None:
        check = validators.get(key)
        if check is not None and not check(value):
            raise SqlBlobError(f"Invalid value for {key}: {value!r}")
        logger.debug(f"Setting {key} to {value}")
        location = self._locate(key)
        if location is None:
            self._extra[key] = value
        else:
            setattr(*location, value)

    def __delitem__(self, key: str) -> None:
        """Drop an extra key, or reset a settings field to None."""
        if key in self._extra:
            del self._extra[key]
            return
        location = self._locate(key)
        if location is None:
            raise KeyError(f"Key '{key}' not found")
        setattr(*location, None)

    def __iter__(self) -> Iterator[str]:
        return iter(self.as_dict())

    def __len__(self) -> int:
        return len(self.as_dict())

    def __repr__(self) -> str:
        return pprint.pformat(self.as_dict(), indent=4)

    def as_dict(self) -> Dict[str, Any]:
        """All settings and extras as a flat dict with dot-separated keys."""
        result: Dict[str, Any] = {}

        def flatten(model: BaseSettings, prefix: str) -> None:
            for name in type(model).model_fields:
                value = getattr(model, name)
                if isinstance(value, BaseSettings):
                    flatten(value, f"{prefix}{name}.")
                else:
                    result[prefix + name] = value

        flatten(self._settings, "")
        result.update(self._extra)
        return result

    def save(self, filename: str, verbose: bool = False) -> None:
        """Write all settings to a JSON file."""
        Path(filename).write_text(json.dumps(self.as_dict(), indent=4))
        if verbose:
            logger.info(f"Saved settings in {filename}")

    def save_local(self, verbose: bool = False) -> None:
        self.save(LOCALCONFIG, verbose)

    def save_global(self, verbose: bool = False) -> None:
        self.save(os.path.expanduser(os.path.join("~", GLOBALCONFIG)), verbose)

    def load(self, filename: Optional[str] = None) -> None:
        """
        Update settings from a JSON file written by save().

        Entries with invalid values are skipped with a warning.

        :param filename: the file, LOCALCONFIG by default
        """
        path = Path(filename or LOCALCONFIG)
        logger.info(f"sqlblob is configured from {path.resolve()}")
        for key, value in json.loads(path.read_text()).items():
            try:
                self[key] = value
            except (SqlBlobError, ValueError) as e:
                logger.warning(f"Ignoring config key '{key}': {e}")

    def blob_store_settings(self) -> BlobStoreSettings:
        """A private copy of the blob store defaults."""
        return self._settings.blobs.model_copy()

    def get_store_spec(self, scheme: str) -> Dict[str, Any]:
        """
        Checked copy of the spec of the external store serving URLs of a scheme.

        :raises SqlBlobError: if the store is not configured, its protocol is
            unknown, or a key is missing or not used by its protocol
        """
        try:
            spec = dict(self._settings.stores[scheme])
        except KeyError:
            raise SqlBlobError(f"External store {scheme} is requested but not configured") from None
        where = f'config["stores"]["{scheme}"]'
        try:
            required, optional = STORE_SPEC_KEYS[str(spec.get("protocol", "")).lower()]
        except KeyError:
            raise SqlBlobError(f"Missing or invalid protocol in {where}") from None
        missing = [key for key in required if key not in spec]
        if missing:
            raise SqlBlobError(f'{where} is missing "{missing[0]}"')
        invalid = [key for key in spec if key not in required + optional]
        if invalid:
            raise SqlBlobError(f'Invalid key "{invalid[0]}" in {where}')
        return spec

    @contextmanager
    def __call__(self, **kwargs: Any) -> Iterator["ConfigWrapper"]:
        """
        Override settings for the duration of a with block. Keyword names are keys
        with ``.`` written as ``__``::

            with config(blobs__compress_blobs=True):
                store = SqlBlobStore(rows)
        """
        overrides = {key.replace("__", "."): value for key, value in kwargs.items()}
        saved = {key: self[key] for key in overrides}
        try:
            for key, value in overrides.items():
                self[key] = value
            yield self
        finally:
            for key, value in saved.items():
                self[key] = value


# checks of keys whose fields do not validate on assignment
validators: Dict[str, Callable[[Any], bool]] = {
    "database.port": lambda value: isinstance(value, int) and not isinstance(value, bool),
}

config = ConfigWrapper(SqlBlobSettings())

for _filename in (LOCALCONFIG, os.path.expanduser(os.path.join("~", GLOBALCONFIG))):
    if os.path.exists(_filename):
        config.load(_filename)
        break
else:
    logger.debug("No config file was found.")
