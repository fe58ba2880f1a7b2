"""Generic key/value settings table."""

from sqlmodel import Field, SQLModel

SCHEMA_VERSION_KEY = "schema_version"


class Setting(SQLModel, table=True):
    """ORM model for one persisted setting.

    The schema version marker lives here under ``SCHEMA_VERSION_KEY``.

    Attributes:
        key: Setting name.
        value: Setting value, stored as text.
    """

    key: str = Field(primary_key=True)
    value: str
