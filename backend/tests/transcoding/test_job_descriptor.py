"""Tests for queue payload parsing."""

import uuid

import pytest
from pydantic import ValidationError

from streamforge.modules.transcoding.schemas import (
    RetranscodeJobDescriptor,
    TranscodeJobDescriptor,
    dump_job_descriptor,
    parse_job_descriptor,
)


class TestJobDescriptor:
    """Tests for the tagged, versioned job payload."""

    def test_transcode_payload_parses_to_transcode_descriptor(self) -> None:
        video_id = uuid.uuid4()
        descriptor = parse_job_descriptor({
            "kind": "transcode",
            "version": 1,
            "source_path": "/uploads/a.mp4",
            "output_dir": "/videos/a.mp4",
            "video_id": str(video_id),
        })
        assert isinstance(descriptor, TranscodeJobDescriptor)
        assert descriptor.video_id == video_id

    def test_retranscode_payload_keeps_replacement_fields(self) -> None:
        descriptor = parse_job_descriptor({
            "kind": "retranscode",
            "source_path": "/uploads/b.mp4",
            "output_dir": "/videos/b.mp4",
            "video_id": str(uuid.uuid4()),
            "previous_output_path": "/videos/a.mp4",
            "replacement_original_name": "holiday.mp4",
        })
        assert isinstance(descriptor, RetranscodeJobDescriptor)
        assert descriptor.previous_output_path == "/videos/a.mp4"
        assert descriptor.replacement_original_name == "holiday.mp4"
        assert descriptor.version == 1

    def test_dumped_payload_is_json_compatible(self) -> None:
        descriptor = TranscodeJobDescriptor(
            source_path="/uploads/a.mp4",
            output_dir="/videos/a.mp4",
            video_id=uuid.uuid4(),
        )
        payload = dump_job_descriptor(descriptor)
        assert payload["kind"] == "transcode"
        assert payload["version"] == 1
        assert isinstance(payload["video_id"], str)

    @pytest.mark.parametrize(
        "change",
        [
            {"kind": "thumbnail"},
            {"version": 2},
            {"video_id": "not-a-uuid"},
            {"unexpected": True},
        ],
    )
    def test_invalid_payloads_are_rejected(self, change: dict) -> None:
        payload = {
            "kind": "transcode",
            "source_path": "/uploads/a.mp4",
            "output_dir": "/videos/a.mp4",
            "video_id": str(uuid.uuid4()),
        }
        payload.update(change)
        with pytest.raises(ValidationError):
            parse_job_descriptor(payload)

    def test_missing_kind_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_job_descriptor({
                "source_path": "/uploads/a.mp4",
                "output_dir": "/videos/a.mp4",
                "video_id": str(uuid.uuid4()),
            })
