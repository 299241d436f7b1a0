# app/transport/schemas.py
from pydantic import AliasChoices, BaseModel, Field

from app.core.dispatch.models import BatchResult, Failed, Sent


class SendNotificationIn(BaseModel):
    recipient_id: str = Field(min_length=1, validation_alias=AliasChoices("userId", "recipientId"))
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)


class NotifyCircleIn(BaseModel):
    circle_code: str = Field(min_length=1, validation_alias=AliasChoices("circleCode", "groupCode"))
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    sender_id: str = Field(min_length=1, validation_alias=AliasChoices("senderUid", "senderId"))
    include_location: bool = Field(default=False, validation_alias="includeLocation")


class NotifyAdminCircleIn(BaseModel):
    admin_id: str = Field(min_length=1, validation_alias="adminId")
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    include_location: bool = Field(default=False, validation_alias="includeLocation")


class NotifyRoleIn(BaseModel):
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    role: str | None = None
    include_location: bool = Field(default=True, validation_alias="includeLocation")


def missing_fields(exc) -> list[str]:
    """Field names (request spelling) rejected by a pydantic ValidationError."""
    names: list[str] = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        name = str(loc[0]) if loc else "body"
        if name not in names:
            names.append(name)
    return names


def batch_to_response(batch: BatchResult) -> dict:
    """Externally visible batch: sent and failed entries, skips as diagnostics."""
    results: list[dict] = []
    for r in batch.results:
        if isinstance(r, Sent):
            results.append({"recipientId": r.recipient_id, "response": r.receipt})
        elif isinstance(r, Failed):
            results.append({"recipientId": r.recipient_id, "error": r.error})

    content: dict = {
        "success": True,
        "results": results,
        "skipped": [{"recipientId": s.recipient_id, "reason": s.reason} for s in batch.skipped],
        "summary": batch.summary(),
    }
    if batch.message:
        content["message"] = batch.message
    return content
