"""Errors raised by the image-to-LED pipeline."""


class MatrixPipelineError(Exception):
    """Base class for pipeline failures."""


class DecodeUnavailable(MatrixPipelineError):
    """The image codec could not decode the input; use the byte-stream sampler."""


class InvalidBufferLength(MatrixPipelineError):
    def __init__(self, actual: int, expected: int) -> None:
        super().__init__(f"pixel buffer has {actual} bytes, expected {expected}")
        self.actual = actual
        self.expected = expected


class EmptyInput(MatrixPipelineError):
    """Zero-length input handed to the byte-stream sampler."""


class UpstreamAcquisitionFailure(MatrixPipelineError):
    """The external image generation call failed."""


class ImageTooLarge(MatrixPipelineError):
    pass
