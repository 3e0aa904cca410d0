"""
Connector configuration.

Settings arrive from the ORM's data source definition, usually in its
camelCase spelling::

    {
        "projectId": "my-project",
        "keyFilename": "service-account.json",
        "namespace": "staging",
    }
"""

import logging
import os
from typing import Any, Optional, Union

from google.cloud import datastore
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

EMULATOR_HOST_ENV = "DATASTORE_EMULATOR_HOST"


class DatastoreSettings(BaseModel):
    """
    Settings for building the native client.

    Attributes:
        project_id: Google Cloud project the kinds live in
        key_filename: Path to a service account JSON file; application
            default credentials are used when absent
        namespace: Datastore namespace for every key and query
        database: Named database, or None for the default one
        emulator_host: ``host:port`` of a Datastore emulator
        transactional: Run bulk read-then-write paths in one transaction
        exclude_from_indexes: Kind -> property names stored unindexed
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    project_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("project_id", "projectId")
    )
    key_filename: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("key_filename", "keyFilename")
    )
    namespace: Optional[str] = None
    database: Optional[str] = None
    emulator_host: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("emulator_host", "emulatorHost")
    )
    transactional: bool = True
    exclude_from_indexes: dict[str, list[str]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("exclude_from_indexes", "excludeFromIndexes"),
    )

    @classmethod
    def coerce(cls, value: Union["DatastoreSettings", dict[str, Any], None]) -> "DatastoreSettings":
        """Accept settings as a model, a mapping, or nothing."""
        if isinstance(value, cls):
            return value
        return cls.model_validate(value or {})


def create_client(settings: DatastoreSettings) -> datastore.Client:
    """
    Build the native Datastore client described by ``settings``.

    The client is created once per connector and shared by every call; it
    pools its own connections.
    """
    if settings.emulator_host:
        os.environ[EMULATOR_HOST_ENV] = settings.emulator_host
        logger.info(f"Using Datastore emulator at {settings.emulator_host}")

    kwargs: dict[str, Any] = {"namespace": settings.namespace}
    # Left out when unset so a key file can supply its own project_id
    if settings.project_id:
        kwargs["project"] = settings.project_id
    if settings.database:
        kwargs["database"] = settings.database

    if settings.key_filename:
        key_path = os.path.abspath(settings.key_filename)
        logger.debug(f"Loading Datastore credentials from {key_path}")
        return datastore.Client.from_service_account_json(key_path, **kwargs)

    return datastore.Client(**kwargs)
