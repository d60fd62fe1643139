"""Models for attachment links."""

from pydantic import Field

from boostsec.results_store.models.base import WireModel


class AttachmentLink(WireModel):
    """Content-addressed descriptor of an attachment.

    ``used`` is set once a test result, fixture or global entry references the
    attachment; ``missed`` stays set until the attachment bytes arrive.
    """

    id: str = Field(..., description="md5 of the original file name")
    name: str | None = Field(default=None, description="Display name")
    original_file_name: str | None = Field(
        default=None, description="File name the attachment was written as"
    )
    ext: str | None = Field(default=None, description="File extension with dot")
    content_type: str | None = Field(default=None, description="MIME type")
    content_length: int | None = Field(default=None, description="Size in bytes")
    used: bool = Field(default=False, description="Referenced by a result")
    missed: bool = Field(default=False, description="Content not received yet")
