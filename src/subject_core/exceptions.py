from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class SubjectPipelineError(Exception):
    message: str
    code: str = "subject_pipeline_error"
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, message: str, *, code: str | None = None, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.context = dict(context or {})

    def __str__(self) -> str:
        return self.message

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "error_message": self.message,
            "error_context": self.context,
        }


class ConfigValidationError(SubjectPipelineError):
    code = "config_validation_error"


class YamlParseError(SubjectPipelineError):
    code = "yaml_parse_error"


class StoreOpenError(SubjectPipelineError):
    code = "store_open_error"


class StoreFormatError(SubjectPipelineError):
    code = "store_format_error"


class SubjectNotFoundError(SubjectPipelineError):
    code = "subject_not_found"

    def __init__(self, message: str, *, subject_id: int, count: int | None = None) -> None:
        context: dict[str, Any] = {"subject_id": subject_id}
        if count is not None:
            context["count"] = count
        super().__init__(message, context=context)
        self.subject_id = subject_id


class SubjectDecodeError(SubjectPipelineError):
    code = "subject_decode_error"


class SubjectFormatError(SubjectPipelineError):
    code = "subject_format_error"


class DuplicateSubjectError(SubjectPipelineError):
    code = "duplicate_subject"


class MissingReferenceError(SubjectPipelineError):
    code = "missing_reference"

    def __init__(self, message: str, *, subject_id: int, field_name: str, missing_id: int) -> None:
        super().__init__(
            message,
            context={"subject_id": subject_id, "field": field_name, "missing_id": missing_id},
        )
        self.subject_id = subject_id
        self.missing_id = missing_id


class ComponentOrderError(SubjectPipelineError):
    code = "component_order_mismatch"


class SimilaritySourceError(SubjectPipelineError):
    code = "similarity_source_error"


class ConversionError(SubjectPipelineError):
    code = "conversion_error"


class ApiError(SubjectPipelineError):
    code = "api_error"


class TooManyRetriesError(ApiError):
    code = "too_many_retries"
