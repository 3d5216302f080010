"""Constructors for the admission response shapes this webhook returns.

Every constructor takes the request uid explicitly; the API server rejects a
response whose uid does not match the request it answers.
"""

from models import (
    AdmissionResponse,
    AdmissionReviewStatus,
    Patch,
    PatchType,
)


def denied(uid: str, code: int, message: str) -> AdmissionResponse:
    return AdmissionResponse(
        uid=uid,
        allowed=False,
        status=AdmissionReviewStatus(code=code, message=message),
    )


def allowed_unchanged(uid: str, message: str) -> AdmissionResponse:
    return AdmissionResponse(
        uid=uid,
        allowed=True,
        status=AdmissionReviewStatus(message=message),
    )


def allowed_with_patch(uid: str, patch: Patch) -> AdmissionResponse:
    # An empty patch must not be sent at all, so there is no patchType either.
    if not patch.root:
        return allowed_unchanged(uid, "No changes required")

    return AdmissionResponse(
        uid=uid,
        allowed=True,
        patchType=PatchType.JSONPatch,
        patch=patch,
    )


def allowed_with_warning(uid: str, warnings: list[str]) -> AdmissionResponse:
    return AdmissionResponse(
        uid=uid,
        allowed=True,
        status=AdmissionReviewStatus(message="; ".join(warnings)),
        warnings=list(warnings),
    )
