from watchearn.models.base import Record


class Video(Record):
    title: str
    description: str = ""
    url: str
    storage_key: str | None = None  # set when the file went through the media store
    duration_seconds: int
    uploaded_by: str | None = None
    is_active: bool = True
