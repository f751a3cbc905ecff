from typing import Any, Dict, Iterable, Optional

# fields that must never leave the server
STAFF_PRIVATE_FIELDS = {"password_hash", "refresh_tokens"}


def serialize_document(doc, exclude: Optional[Iterable[str]] = None) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    excluded = set(exclude or ()) | {"revision_id"}
    data = doc.model_dump(mode="json", exclude=excluded)
    data["id"] = str(doc.id) if doc.id is not None else None
    return data


def serialize_user(user) -> Optional[Dict[str, Any]]:
    return serialize_document(user, exclude=STAFF_PRIVATE_FIELDS)


def success_response(data: Any = None, message: Optional[str] = None, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body

