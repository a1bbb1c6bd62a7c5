# services/validator.py

"""
Job configuration validation
"""

from dataclasses import dataclass, field
from typing import List, Optional, Any

from datagen.models.job import DataFormat, JobConfiguration

KNOWN_FORMATS = frozenset(f.value for f in DataFormat)


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _check_format(errors: List[str], name: str, value: Optional[str], required: bool = False):
    if value is None or value == "":
        if required:
            errors.append(f"{name}: is required")
        return
    if value.lower() not in KNOWN_FORMATS:
        errors.append(f"{name}: unknown format '{value}' (expected one of {', '.join(sorted(KNOWN_FORMATS))})")


def _check_positive(errors: List[str], name: str, value: Any):
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f"{name}: must be an integer")
    elif value <= 0:
        errors.append(f"{name}: must be greater than 0")


def validate_configuration(config: JobConfiguration) -> ValidationResult:
    """Check a configuration without touching any state.

    Returns every field-level problem found; an empty list means the
    configuration can be submitted.
    """
    errors: List[str] = []

    _check_format(errors, "dataType", config.data_type, required=True)
    _check_format(errors, "inputFormat", config.input_format)
    _check_format(errors, "outputFormat", config.output_format)

    row_count = config.parameters.get("rowCount")
    if config.data_size is None and row_count is None:
        errors.append("dataSize: is required (or parameters.rowCount)")
    if config.data_size is not None:
        _check_positive(errors, "dataSize", config.data_size)
    if row_count is not None:
        _check_positive(errors, "parameters.rowCount", row_count)

    if config.timeout is not None:
        _check_positive(errors, "timeout", config.timeout)
    if config.resume_window is not None:
        _check_positive(errors, "resumeWindow", config.resume_window)

    return ValidationResult(errors=errors)
