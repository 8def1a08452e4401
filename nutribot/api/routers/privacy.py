"""Consent management and data-subject rights routes."""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response

from nutribot.api.deps import get_current_owner, get_privacy_context, get_services
from nutribot.container import Services
from nutribot.privacy.context import PrivacyContext
from nutribot.schemas.privacy import (
    ConsentRequest,
    DeleteRequest,
    ExportRequest,
    ObjectionRequest,
    RectifyRequest,
    RestrictRequest,
    RevokeConsentRequest,
)
from nutribot.security.consent import consent_to_dict

router = APIRouter(tags=["privacy"])


# ── Consent ──────────────────────────────────────────────────────────


@router.post("/consent", status_code=status.HTTP_201_CREATED)
async def record_consents(
    body: ConsentRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    recorded = [
        await services.consents.record_consent(
            owner_id,
            item.type,
            item.purpose,
            item.granted,
            item.expiry_date,
        )
        for item in body.consents
    ]
    return {
        "consents": [consent_to_dict(c, context.timestamp) for c in recorded],
        "privacy": context.metadata(),
    }


@router.get("/consent")
async def list_consents(
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    consents = await services.consents.list_consents(owner_id)
    return {
        "consents": [consent_to_dict(c, context.timestamp) for c in consents],
        "privacy": context.metadata(),
    }


@router.post("/consent/revoke")
async def revoke_consent(
    body: RevokeConsentRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    consent = await services.consents.revoke(owner_id, body.consent_id, body.reason)
    return {"consent": consent_to_dict(consent, context.timestamp), "privacy": context.metadata()}


# ── Data-subject rights ──────────────────────────────────────────────


@router.get("/data")
async def get_user_data(
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Right of access: everything held about the caller, decrypted."""
    data = await services.data_rights.get_user_data(owner_id)
    return {"data": data, "privacy": context.metadata()}


@router.post("/data/export")
async def export_user_data(
    body: ExportRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> Response:
    """Right to portability: a file download in the requested format."""
    export = await services.data_rights.export_user_data(owner_id, body.format, body.categories)
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Data-Export-Date": export.exported_at.isoformat(),
            "X-Data-Format": body.format.value,
        },
    )


@router.put("/data/rectify")
async def rectify_data(
    body: RectifyRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    result = await services.data_rights.rectify_field(
        owner_id,
        body.field,
        body.value,
        body.reason,
        body.assessment_id,
    )
    return {"rectification": result, "privacy": context.metadata()}


@router.post("/data/restrict")
async def restrict_processing(
    body: RestrictRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    restriction = await services.data_rights.restrict_processing(
        owner_id,
        body.reason,
        body.categories,
        body.duration,
    )
    return {"restriction": restriction, "privacy": context.metadata()}


@router.delete("/data/delete")
async def delete_user_data(
    body: DeleteRequest | None = None,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Right to erasure. Irreversible."""
    body = body or DeleteRequest()
    result = await services.data_rights.delete_user_data(owner_id, body.categories, body.reason)
    return {
        "message": "Personal data deleted",
        "deletionRequestId": str(result.deletion_request_id),
        "deletedRecords": result.deleted_records,
        "consentsRevoked": result.consents_revoked,
        "privacy": context.metadata(),
    }


@router.post("/data/object", status_code=status.HTTP_201_CREATED)
async def object_to_processing(
    body: ObjectionRequest,
    owner_id: str = Depends(get_current_owner),
    context: PrivacyContext = Depends(get_privacy_context),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    objection = await services.data_rights.object_to_processing(
        owner_id,
        body.reason,
        body.processing_type,
        body.categories,
    )
    return {"objection": objection, "privacy": context.metadata()}
