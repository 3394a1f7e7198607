"""Captured audio produced by a finished recording session."""

from pydantic import BaseModel, ConfigDict, Field


class CapturedAudio(BaseModel):
    """A finished audio buffer ready for upload."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    mime_type: str = Field(
        default="audio/wav",
        description="MIME type of the encoded buffer"
    )
    duration_seconds: int = Field(
        default=0,
        ge=0,
        description="Value of the 1-second duration counter when recording stopped"
    )
    elapsed_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Wall-clock length of the recording"
    )

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def filename(self) -> str:
        subtype = self.mime_type.split("/")[-1].split(";")[0] or "bin"
        return f"recording.{subtype}"
