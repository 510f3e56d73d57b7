"""Key-value snapshot table."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from noteforge.utils.datetime import utc_now


class KeyValueEntry(SQLModel, table=True):  # type: ignore
    """A single persisted blob (note snapshot, model tier, context document)."""

    __tablename__ = "kv_store"  # type: ignore

    key: str = Field(primary_key=True)
    value: str = Field(default="")
    updated_at: datetime = Field(default_factory=utc_now)
