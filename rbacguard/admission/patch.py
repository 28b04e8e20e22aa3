"""JSON patch construction for mutating responses."""

import base64
import json
from typing import Any, Dict

import jsonpatch

from rbacguard.models.admission import AdmissionResponse

PATCH_TYPE_JSON_PATCH = "JSONPatch"


def create_patch(old: Dict[str, Any], new: Dict[str, Any], response: AdmissionResponse) -> None:
    """Attach the patch turning `old` into `new` to the response, if they differ."""
    patch = jsonpatch.make_patch(old, new)
    operations = list(patch)
    if not operations:
        return
    response.patch = base64.b64encode(json.dumps(operations).encode()).decode()
    response.patch_type = PATCH_TYPE_JSON_PATCH
