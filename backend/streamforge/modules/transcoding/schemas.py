"""Pydantic schemas for transcoding job payloads.

Queue payloads are a versioned, tagged union so a worker can reject
payloads it does not understand instead of guessing at their shape.
"""

from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

JOB_DESCRIPTOR_VERSION = 1


class _JobDescriptorBase(BaseModel):
    """Fields shared by every job kind."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    version: Literal[1] = JOB_DESCRIPTOR_VERSION
    source_path: str = Field(..., description="Uploaded source file to transcode")
    output_dir: str = Field(..., description="Directory receiving the HLS package")
    video_id: UUID


class TranscodeJobDescriptor(_JobDescriptorBase):
    """First transcode of a freshly uploaded video."""
    kind: Literal["transcode"] = "transcode"


class RetranscodeJobDescriptor(_JobDescriptorBase):
    """Transcode of a replacement file supplied by an edit.

    On success the previous output directory is removed and the video's
    original file name is replaced.
    """
    kind: Literal["retranscode"] = "retranscode"
    previous_output_path: Optional[str] = Field(
        None, description="Output directory of the superseded package"
    )
    replacement_original_name: Optional[str] = Field(
        None, description="Original file name of the replacement upload"
    )


JobDescriptor = Annotated[
    Union[TranscodeJobDescriptor, RetranscodeJobDescriptor],
    Field(discriminator="kind"),
]

_job_descriptor_adapter: TypeAdapter = TypeAdapter(JobDescriptor)


def parse_job_descriptor(payload: dict) -> Union[TranscodeJobDescriptor, RetranscodeJobDescriptor]:
    """Validate a queue payload into a job descriptor.

    Raises:
        pydantic.ValidationError: if the payload is malformed, has an
            unknown kind or an unsupported version
    """
    return _job_descriptor_adapter.validate_python(payload)


def dump_job_descriptor(
    descriptor: Union[TranscodeJobDescriptor, RetranscodeJobDescriptor],
) -> dict:
    """Serialize a descriptor to a JSON-compatible dict for the queue."""
    return descriptor.model_dump(mode="json")
