"""Input validation for capability arguments.

Each check is independent and raises `ValidationError` naming the offending
field; callers pick only the checks relevant to the operation at hand.
"""

from __future__ import annotations

import json
import re
from typing import Any

from toolgate.config.schema import ValidatorConfig
from toolgate.utils.exceptions import ValidationError

_IDENTIFIER = re.compile(r"^[a-zA-Z0-9_-]+$")

MAX_INDEX_NAME_LENGTH = 256
MAX_MODULE_NAME_LENGTH = 128

DANGEROUS_CODE_PATTERNS = (
    "os.execute",
    "io.popen",
    "loadfile",
    "dofile",
)


def is_valid_identifier(value: str) -> bool:
    return bool(value) and _IDENTIFIER.match(value) is not None


def sanitize_string(value: str) -> str:
    """Remove null bytes and control characters."""
    return "".join(ch for ch in value if ord(ch) >= 32 and ord(ch) != 127)


class Validator:
    """Stateless shape, length and character-class checks."""

    def __init__(self, config: ValidatorConfig | None = None):
        self.config = config or ValidatorConfig()

    def _identifier(self, value: Any, field: str, max_length: int, *, required: bool = True) -> None:
        if value is None or value == "":
            if required:
                raise ValidationError("cannot be empty", field=field)
            return
        if not isinstance(value, str):
            raise ValidationError("must be a string", field=field)
        if len(value) > max_length:
            raise ValidationError(f"exceeds maximum length of {max_length}", field=field)
        if not is_valid_identifier(value):
            raise ValidationError(
                "contains invalid characters (must be alphanumeric, underscore, or hyphen)",
                field=field,
            )

    def validate_namespace(self, namespace: Any) -> None:
        self._identifier(namespace, "namespace", self.config.max_namespace_length)

    def validate_set_name(self, set_name: Any) -> None:
        # Set name is optional.
        self._identifier(set_name, "set_name", self.config.max_set_name_length, required=False)

    def validate_key(self, key: Any) -> None:
        if key is None or key == "":
            raise ValidationError("cannot be empty", field="key")
        if isinstance(key, bool) or not isinstance(key, (str, int, float)):
            raise ValidationError("must be a string or number", field="key")
        text = str(key)
        if len(text) > self.config.max_key_length:
            raise ValidationError(f"exceeds maximum length of {self.config.max_key_length}", field="key")
        try:
            text.encode("utf-8")
        except UnicodeEncodeError:
            raise ValidationError("must be valid UTF-8", field="key") from None

    def validate_bin_name(self, bin_name: Any) -> None:
        self._identifier(bin_name, "bin_name", self.config.max_bin_name_length)

    def validate_bins(self, bins: Any) -> None:
        if not isinstance(bins, dict):
            raise ValidationError("must be an object of bin name to value", field="bins")
        for name in bins:
            self.validate_bin_name(name)

    def validate_record_size(self, bins: Any) -> None:
        """Approximate a record by its JSON-encoded bins."""
        size = len(json.dumps(bins, ensure_ascii=False, default=str).encode("utf-8"))
        if size > self.config.max_record_size:
            raise ValidationError(
                f"exceeds maximum of {self.config.max_record_size} bytes (got {size})",
                field="record_size",
            )

    def validate_bin_list(self, bins: Any) -> None:
        if not isinstance(bins, list):
            raise ValidationError("must be a list of bin names", field="bins")
        for name in bins:
            self.validate_bin_name(name)

    def validate_batch_size(self, size: int) -> None:
        if size <= 0:
            raise ValidationError("must be positive", field="batch_size")
        if size > self.config.max_batch_size:
            raise ValidationError(f"exceeds maximum of {self.config.max_batch_size}", field="batch_size")

    def validate_index_name(self, index_name: Any) -> None:
        self._identifier(index_name, "index_name", MAX_INDEX_NAME_LENGTH)

    def validate_udf_code(self, code: Any) -> None:
        if not code:
            raise ValidationError("cannot be empty", field="code")
        if not isinstance(code, str):
            raise ValidationError("must be a string", field="code")
        lowered = code.lower()
        for pattern in DANGEROUS_CODE_PATTERNS:
            if pattern in lowered:
                raise ValidationError(f"contains potentially dangerous function: {pattern}", field="code")

    def validate_module_name(self, module_name: Any) -> None:
        if not module_name:
            raise ValidationError("cannot be empty", field="module_name")
        if not isinstance(module_name, str):
            raise ValidationError("must be a string", field="module_name")
        if len(module_name) > MAX_MODULE_NAME_LENGTH:
            raise ValidationError(f"exceeds maximum length of {MAX_MODULE_NAME_LENGTH}", field="module_name")
        if not module_name.lower().endswith(".lua"):
            raise ValidationError("must end with .lua extension", field="module_name")
