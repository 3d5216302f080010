import json
import logging
from typing import Any

import jsonpatch

from exc import EncodingError
from models import Patch

LOG = logging.getLogger(__name__)


def _load(doc, which):
    if isinstance(doc, (bytes, bytearray, str)):
        try:
            return json.loads(doc)
        except (ValueError, UnicodeDecodeError) as err:
            raise EncodingError(f"unable to decode {which} document: {err}") from err
    return doc


def create_patch(original: bytes | str, mutated: bytes | str) -> Patch:
    """Compute the RFC 6902 operations that turn `original` into `mutated`.

    Both arguments are JSON documents. Identical documents produce an empty
    patch; callers are expected to leave the patch out of the admission
    response in that case.
    """

    src = _load(original, "original")
    dst = _load(mutated, "mutated")

    ops = jsonpatch.JsonPatch.from_diff(src, dst).patch
    LOG.debug("computed %d patch operations", len(ops))
    return Patch.model_validate(ops)


def apply_patch(doc: dict[str, Any], patch: Patch) -> dict[str, Any]:
    try:
        return jsonpatch.apply_patch(doc, patch.to_list(), in_place=False)
    except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException) as err:
        raise EncodingError(f"unable to apply patch: {err}") from err
