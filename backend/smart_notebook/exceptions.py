"""Custom exceptions for the Smart Notebook backend."""


class NotebookError(RuntimeError):
    """Raise when a step of an analysis pass failed but the session should continue."""
    def __init__(self, detail: str, *, code: str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.code = code or "notebook_error"


class CaptureError(NotebookError):
    """Rasterisation of the canvas region produced no image."""
    def __init__(self, detail: str = "Canvas capture produced no image"):
        super().__init__(detail, code="capture_failed")


class AnnotationTransportError(NotebookError):
    """The annotation backend could not be reached or answered with garbage."""
    def __init__(self, detail: str, *, status_code: int | None = None):
        super().__init__(detail, code="transport_failed")
        self.status_code = status_code


class ToolInputError(ValueError):
    """Custom exception for caller input validation errors."""
    pass
