"""
Custom exceptions for the rule-line removal system.
"""

from typing import Optional, Sequence


class RuleLineError(Exception):
    """Base exception for rule-line processing errors."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class InvalidRasterError(RuleLineError):
    """Raised for programming errors on raster arguments (null, aliased, mismatched)."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        full_message = f"래스터 오류: {message}"
        if operation:
            full_message += f" (작업: {operation})"
        super().__init__(full_message, "INVALID_RASTER")


class NotBinaryImageError(RuleLineError):
    """Raised when an image cannot be treated as a two-level raster."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        full_message = f"이진 이미지가 아닙니다: {message}"
        if source:
            full_message += f" (파일: {source})"
        super().__init__(full_message, "NOT_BINARY")


class InvalidParameterError(RuleLineError):
    """Raised once for every parameter set that holds undefined values."""

    def __init__(self, message: str, names: Sequence[str] = ()):
        self.names = list(names)
        full_message = f"파라미터 오류: {message}"
        if self.names:
            full_message += f" (파라미터: {', '.join(self.names)})"
        super().__init__(full_message, "INVALID_PARAMETERS")


class SubspaceFormatError(RuleLineError):
    """Raised when a stored subspace does not match the live model."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        full_message = f"부분공간 파일 오류: {message}"
        if path:
            full_message += f" (파일: {path})"
        super().__init__(full_message, "SUBSPACE_FORMAT")


class ConfigurationError(RuleLineError):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        full_message = f"설정 오류: {message}"
        if config_key:
            full_message += f" (설정키: {config_key})"
        super().__init__(full_message, "CONFIG_ERROR")


class ResourceExhaustedError(RuleLineError):
    """Raised when a raster is too large for the available memory."""

    def __init__(self, message: str, required_mb: Optional[float] = None):
        self.required_mb = required_mb
        full_message = f"메모리 부족: {message}"
        if required_mb is not None:
            full_message += f" (필요: {required_mb:.1f}MB)"
        super().__init__(full_message, "RESOURCE_EXHAUSTED")


class PDFProcessingError(RuleLineError):
    """Raised when a scanned PDF cannot be opened or rendered."""

    def __init__(self, message: str, pdf_path: Optional[str] = None):
        self.pdf_path = pdf_path
        full_message = f"PDF 처리 오류: {message}"
        if pdf_path:
            full_message += f" (파일: {pdf_path})"
        super().__init__(full_message, "PDF_ERROR")
