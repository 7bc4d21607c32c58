"""
Record data models for Events Service.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class RecordRepo(BaseModel):
    """Origin repository of a record."""
    model_config = ConfigDict(extra="ignore")

    name: str = ""


class RecordActor(BaseModel):
    """Origin actor of a record."""
    model_config = ConfigDict(extra="ignore")

    login: str = ""


class Record(BaseModel):
    """An externally produced event record.

    The JSON shape matches the upstream events feed: ``repo`` and ``actor``
    are nested objects, ``created_at`` is an ISO-8601 string that sorts
    lexicographically.
    """
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Externally assigned identifier")
    type: str = Field(default="", description="Event type tag")
    created_at: str = Field(default="", description="ISO-8601 creation timestamp")
    repo: RecordRepo = Field(default_factory=RecordRepo)
    actor: RecordActor = Field(default_factory=RecordActor)

    @classmethod
    def from_row(cls, row) -> "Record":
        """Build a record from a durable-store row, addressed by column name."""
        return cls(
            id=row["id"],
            type=row["type"] or "",
            created_at=row["created_at"] or "",
            repo=RecordRepo(name=row["repo"] or ""),
            actor=RecordActor(login=row["actor"] or ""),
        )


RecordList = TypeAdapter(List[Record])
