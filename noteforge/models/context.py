"""Reference context document supplied to the classifier."""

from datetime import datetime

from pydantic import BaseModel, Field

from noteforge.utils.datetime import utc_now


class ContextDocument(BaseModel):
    """An uploaded reference text used to ground classification."""

    filename: str
    text: str
    uploaded_at: datetime = Field(default_factory=utc_now)

    @property
    def size(self) -> int:
        return len(self.text.encode("utf-8"))
