class GenerationError(Exception):
    """Base class for every failure surfaced by ``generate_video``."""


class InsufficientFramesError(GenerationError):
    def __init__(self, count: int, minimum: int = 2):
        self.count = count
        self.minimum = minimum
        super().__init__(f"At least {minimum} frames required to generate video (got {count})")


class InvalidDurationError(GenerationError, ValueError):
    def __init__(self, duration):
        self.duration = duration
        super().__init__(f"duration_seconds must be a finite number > 0 (got {duration})")


class UnsupportedPlatformError(GenerationError):
    def __init__(self, missing: list[str] | None = None):
        self.missing = list(missing or [])
        detail = f" (missing: {', '.join(self.missing)})" if self.missing else ""
        super().__init__(
            "Video generation is not supported by this runtime"
            f"{detail}. Submit the frame URLs and duration to the server-side "
            "transcoder instead."
        )


class AssetLoadError(GenerationError):
    def __init__(self, index: int, url: str, cause: BaseException | None = None):
        self.index = index
        self.url = url
        self.cause = cause
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to load frame {index} ({url}){reason}")


class EncodingError(GenerationError):
    def __init__(self, message: str, stage: str = "recording", codec: str | None = None):
        self.stage = stage
        self.codec = codec
        suffix = f" [stage={stage}" + (f", codec={codec}" if codec else "") + "]"
        super().__init__(message + suffix)


class GenerationCancelledError(GenerationError):
    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Video generation cancelled during {state}")
