"""Adaptive Bitrate (ABR) ladder configuration and rendition selection.

The ladder is a fixed, ascending list of renditions. For each source only
the renditions that fit inside the source frame are produced; sources are
never upscaled.
"""

from dataclasses import dataclass, field

from streamforge.modules.transcoding.models import Resolution, RESOLUTION_DIMENSIONS


@dataclass(frozen=True)
class ABRVariant:
    """A single rendition (rung) in an ABR ladder. Bitrates are in bps."""
    resolution: Resolution
    width: int
    height: int
    bitrate: int
    max_bitrate: int
    buffer_size: int

    @property
    def name(self) -> str:
        return self.resolution.value

    @classmethod
    def for_resolution(
        cls,
        resolution: Resolution,
        bitrate: int,
        max_bitrate: int,
        buffer_size: int,
    ) -> "ABRVariant":
        width, height = RESOLUTION_DIMENSIONS[resolution]
        return cls(
            resolution=resolution,
            width=width,
            height=height,
            bitrate=bitrate,
            max_bitrate=max_bitrate,
            buffer_size=buffer_size,
        )


@dataclass(frozen=True)
class ABRLadder:
    """Complete ABR ladder configuration.

    Immutable for the lifetime of a deployment. Construction fails with
    ValueError when the variants are not a valid ascending ladder.
    """
    variants: tuple[ABRVariant, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        is_valid, errors = validate_abr_config(self)
        if not is_valid:
            raise ValueError("; ".join(errors))

    def __iter__(self):
        return iter(self.variants)

    def __len__(self) -> int:
        return len(self.variants)

    @property
    def smallest(self) -> ABRVariant:
        return self.variants[0]

    @classmethod
    def create_standard_ladder(cls) -> "ABRLadder":
        """Create the standard VOD ladder, 144p through 4K."""
        return cls(
            variants=(
                ABRVariant.for_resolution(Resolution.RES_144P, 200_000, 214_000, 300_000),
                ABRVariant.for_resolution(Resolution.RES_240P, 400_000, 428_000, 600_000),
                ABRVariant.for_resolution(Resolution.RES_360P, 800_000, 856_000, 1_200_000),
                ABRVariant.for_resolution(Resolution.RES_480P, 1_500_000, 1_605_000, 2_500_000),
                ABRVariant.for_resolution(Resolution.RES_720P, 3_000_000, 3_210_000, 4_500_000),
                ABRVariant.for_resolution(Resolution.RES_1080P, 5_000_000, 5_350_000, 7_500_000),
                ABRVariant.for_resolution(Resolution.RES_1440P, 8_000_000, 8_560_000, 12_000_000),
                ABRVariant.for_resolution(Resolution.RES_4K, 15_000_000, 16_000_000, 20_000_000),
            ),
        )


def validate_abr_config(ladder: ABRLadder) -> tuple[bool, list[str]]:
    """Validate ABR ladder configuration.

    Args:
        ladder: ABR ladder to validate

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []

    if not ladder.variants:
        errors.append("ABR ladder must have at least one variant")

    names = [variant.name for variant in ladder.variants]
    if len(names) != len(set(names)):
        errors.append("Variant names must be unique")

    previous = None
    for variant in ladder.variants:
        if variant.width <= 0 or variant.height <= 0:
            errors.append(f"Dimensions must be positive for {variant.name}")
        if variant.max_bitrate < variant.bitrate:
            errors.append(f"Max bitrate must be >= bitrate for {variant.name}")
        if previous is not None and (
            variant.width < previous.width or variant.height < previous.height
        ):
            errors.append("Variants must be ordered by ascending resolution")
        previous = variant

    return len(errors) == 0, errors


def select_renditions(ladder: ABRLadder, source_width: int, source_height: int) -> list[ABRVariant]:
    """Select the ladder variants to produce for a source.

    Keeps every variant that fits within the source frame on both axes, in
    ladder order. An empty result means the source is smaller than the
    smallest rung; callers must fail the job rather than transcode nothing.

    Args:
        ladder: ABR ladder
        source_width: Width of the source video stream
        source_height: Height of the source video stream

    Returns:
        Ordered list of variants to produce
    """
    return [
        variant
        for variant in ladder.variants
        if variant.width <= source_width and variant.height <= source_height
    ]


def format_bitrate(bps: int) -> str:
    """Render a bitrate in bps as an FFmpeg kilobit string, e.g. ``3000k``."""
    return f"{bps // 1000}k"


DEFAULT_LADDER = ABRLadder.create_standard_ladder()
