from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from workflow_store.db.base import generate_id


def _has_id(document: Mapping[str, Any]) -> bool:
    value = document.get("id")
    return value is not None and str(value) != ""


# PUBLIC_INTERFACE
def assign_id_to_documents(documents: Optional[Iterable[Any]]) -> list[Any]:
    """
    Return a copy of ``documents`` where every document lacking an id gets one.

    Documents that already carry a non-empty id are returned unchanged. Non-dict
    elements are passed through as they are. ``None`` yields an empty list.
    """
    if documents is None:
        return []
    assigned: list[Any] = []
    for document in documents:
        if isinstance(document, Mapping) and not _has_id(document):
            assigned.append({**document, "id": generate_id()})
        else:
            assigned.append(document)
    return assigned


# PUBLIC_INTERFACE
def with_document_ids(context: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Return a shallow copy of a workflow context with ids assigned to its documents.

    A missing or null ``documents`` becomes ``[]``; a value that is not an array
    is left as it is. Mirrors the ``jsonb_assign_document_ids`` procedure.
    """
    context = dict(context or {})
    documents = context.get("documents")
    if documents is None or isinstance(documents, list):
        context["documents"] = assign_id_to_documents(documents)
    return context
