"""RFC 6902 JSON Patch over pydantic documents, using ``jsonpatch``.

The target model is dumped to JSON, patched, then revalidated as
``result_type`` so constraints still hold after the patch.
"""

from collections.abc import Sequence
from typing import Any, TypeVar

import jsonpatch
import jsonpointer
from pydantic import BaseModel, ValidationError

from core.links import LINKS_KEY

M = TypeVar("M", bound=BaseModel)


class InvalidPatchError(ValueError):
    """The patch document could not be applied (bad path, failed test op...)."""


class PatchValidationError(ValueError):
    """The patched document no longer satisfies the schema."""

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        super().__init__(f"Patched document is invalid ({len(errors)} errors)")


def apply_json_patch(
    document: BaseModel,
    operations: Sequence[dict[str, Any]],
    result_type: type[M],
) -> M:
    source = document.model_dump(mode="json", exclude={LINKS_KEY})
    try:
        patched = jsonpatch.JsonPatch(list(operations)).apply(source)
    except (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException) as e:
        raise InvalidPatchError(str(e)) from e

    try:
        return result_type.model_validate(patched)
    except ValidationError as e:
        raise PatchValidationError(
            e.errors(include_url=False, include_context=False)
        ) from e
