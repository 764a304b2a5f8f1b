from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from revas.api.deps import get_current_actor, get_store
from revas.core.actors import Actor
from revas.core.errors import NotFoundError
from revas.database import get_db
from revas.models import DocumentStatus, DocumentType
from revas.schemas.documents import (
    DocumentCloseRequest,
    DocumentCloseResponse,
    DocumentGenerateResponse,
    DocumentList,
    DocumentRead,
    DownloadUrlRead,
    DownloadVariant,
    SigningStatusRead,
    SignResponse,
)
from revas.services import documents_service, signing
from revas.services.audit import audit_event, audit_request_context
from revas.services.blob_store import BlobStore, LocalBlobStore
from revas.services.notifications import deliver_notification_emails

router = APIRouter(prefix="/documents", tags=["documents"])


def _generation_response(result: documents_service.GenerationResult, *, regenerated: bool = False):
    if result.is_existing:
        message = "Document already exists"
    elif regenerated:
        message = "Document regenerated"
    elif result.documents_complete:
        message = "Document generated; all order documents are complete"
    else:
        message = "Document generated"
    return DocumentGenerateResponse(
        message=message,
        is_existing=result.is_existing,
        document=DocumentRead.model_validate(result.document),
        documents_complete=result.documents_complete,
    )


@router.post("/orders/{order_id}/generate", response_model=DocumentGenerateResponse)
def generate_document(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    store: BlobStore = Depends(get_store),  # noqa: B008
):
    result = documents_service.generate_order_document(db, actor, order_id, store=store)
    if not result.is_existing:
        deliver_notification_emails(db, result.notifications)
        audit_event(
            "document.generated",
            actor.id,
            {
                "document_id": result.document.id,
                "doc_type": result.document.doc_type.value,
                "invoice_number": result.document.invoice_number,
                "documents_complete": result.documents_complete,
            },
            db=db,
            order_id=order_id,
            **audit_request_context(request),
        )
    return _generation_response(result)


@router.post("/orders/{order_id}/regenerate", response_model=DocumentGenerateResponse)
def regenerate_document(
    request: Request,
    order_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    store: BlobStore = Depends(get_store),  # noqa: B008
):
    result = documents_service.regenerate_order_document(db, actor, order_id, store=store)
    audit_event(
        "document.regenerated",
        actor.id,
        {"document_id": result.document.id, "doc_type": result.document.doc_type.value},
        db=db,
        order_id=order_id,
        **audit_request_context(request),
    )
    return _generation_response(result, regenerated=True)


@router.post("/orders/{order_id}/sign", response_model=SignResponse)
def sign_document(
    request: Request,
    order_id: int,
    file: UploadFile = File(...),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    store: BlobStore = Depends(get_store),  # noqa: B008
):
    content = file.file.read()
    result = signing.upload_signed_document(db, actor, order_id, content=content, store=store)
    notified = [n.user_id for n in result.notifications]
    deliver_notification_emails(db, result.notifications)
    audit_event(
        "document.signed",
        actor.id,
        {
            "document_id": result.document.id,
            "filename": file.filename,
            "fully_signed": result.fully_signed,
        },
        db=db,
        order_id=order_id,
        **audit_request_context(request),
    )
    return SignResponse(
        message="Documents fully signed" if result.fully_signed else "Signature recorded",
        document=DocumentRead.model_validate(result.document),
        fully_signed=result.fully_signed,
        notified_user_ids=notified,
    )


@router.get("", response_model=DocumentList)
def list_documents(
    status_filter: Optional[DocumentStatus] = Query(None, alias="status"),
    doc_type: Optional[DocumentType] = Query(None),
    order_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    docs = documents_service.list_client_documents(
        db, actor, status=status_filter, doc_type=doc_type, order_id=order_id
    )
    return DocumentList(documents=[DocumentRead.model_validate(d) for d in docs], total=len(docs))


@router.get("/signed", response_model=DocumentList)
def list_signed_documents(
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    docs = documents_service.list_signed_documents(db, actor)
    return DocumentList(documents=[DocumentRead.model_validate(d) for d in docs], total=len(docs))


@router.get("/files/{key:path}", include_in_schema=False)
def download_local_file(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    store: BlobStore = Depends(get_store),  # noqa: B008
):
    # Only the local store mints URLs that point back at this API.
    if not isinstance(store, LocalBlobStore):
        raise NotFoundError("Not found")
    path = store.open_signed(key, expires=expires, signature=signature)
    return FileResponse(path, media_type="application/pdf", filename=path.name)


@router.get("/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    return documents_service.get_document_for_actor(db, actor, document_id)


@router.get("/{document_id}/signing-status", response_model=SigningStatusRead)
def get_signing_status(
    document_id: int,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    status = signing.get_signing_status(db, actor, document_id)
    return SigningStatusRead(
        document_id=status.document_id,
        status=status.status,
        signed_by_buyer=status.signed_by_buyer,
        signed_by_supplier=status.signed_by_supplier,
    )


@router.get("/{document_id}/download-url", response_model=DownloadUrlRead)
def get_download_url(
    document_id: int,
    variant: DownloadVariant = Query("original"),
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
    store: BlobStore = Depends(get_store),  # noqa: B008
):
    document, url, ttl = documents_service.document_download_url(
        db, actor, document_id, variant=variant, store=store
    )
    return DownloadUrlRead(document_id=document.id, variant=variant, url=url, expires_in=ttl)


@router.post("/{document_id}/expire", response_model=DocumentCloseResponse)
def expire_document(
    request: Request,
    document_id: int,
    payload: Optional[DocumentCloseRequest] = None,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    reason = payload.reason if payload else None
    result = documents_service.expire_document(db, actor, document_id, reason=reason)
    deliver_notification_emails(db, result.notifications)
    audit_event(
        "document.expired",
        actor.id,
        {"document_id": document_id, "reason": reason},
        db=db,
        order_id=result.document.order_id,
        **audit_request_context(request),
    )
    return DocumentCloseResponse(
        message="Document expired", document=DocumentRead.model_validate(result.document)
    )


@router.post("/{document_id}/decline", response_model=DocumentCloseResponse)
def decline_document(
    request: Request,
    document_id: int,
    payload: Optional[DocumentCloseRequest] = None,
    db: Session = Depends(get_db),  # noqa: B008
    actor: Actor = Depends(get_current_actor),  # noqa: B008
):
    reason = payload.reason if payload else None
    result = documents_service.decline_document(db, actor, document_id, reason=reason)
    deliver_notification_emails(db, result.notifications)
    audit_event(
        "document.declined",
        actor.id,
        {"document_id": document_id, "reason": reason},
        db=db,
        order_id=result.document.order_id,
        **audit_request_context(request),
    )
    return DocumentCloseResponse(
        message="Document declined", document=DocumentRead.model_validate(result.document)
    )
