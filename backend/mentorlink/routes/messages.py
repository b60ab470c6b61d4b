# backend/mentorlink/routes/messages.py
"""
Messages routes

Message endpoints under /messages. All business logic is delegated to
MessagingService; realtime pushes happen here, after the service has
committed, and never affect the HTTP outcome.

Endpoints (organized with static routes BEFORE dynamic routes):
    GET /conversations - Conversations with eligible partners
    GET /unread-count - Total unread count for current user
    GET /search - Search the caller's visible messages
    GET /can-message/{user_id} - Eligibility check
    POST /upload - Upload an attachment
    POST "" - Send a message

    === Dynamic Routes ===
    GET /{recipient_id} - Message history with a partner
    PUT /mark-read/{recipient_id} - Mark a partner's messages as read
    DELETE /{message_id} - Delete a message for the caller
"""

import asyncio
from datetime import datetime
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..core.exceptions import DomainException
from ..database import get_db
from ..models.user import User
from ..schemas.message_requests import SendMessageRequest
from ..schemas.message_responses import (
    CanMessageResponse,
    ConversationListResponse,
    ConversationResponse,
    MessageListResponse,
    MessageResponse,
    MessageSearchResponse,
    SendMessageResponse,
    SuccessResponse,
    UnreadCountResponse,
    UploadResponse,
)
from ..services.attachment_service import AttachmentService
from ..services.messaging import get_gateway, publish_messages_read, publish_new_message
from ..services.messaging_service import MessagingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


def get_messaging_service(db: Session = Depends(get_db)) -> MessagingService:
    """Get messaging service instance."""
    return MessagingService(db)


def get_attachment_service() -> AttachmentService:
    return AttachmentService()


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ============================================================================
# Static routes
# ============================================================================


@router.get(
    "/conversations",
    response_model=ConversationListResponse,
    response_model_by_alias=True,
    responses={401: {"description": "Not authenticated"}},
)
async def list_conversations(
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> ConversationListResponse:
    """
    List the caller's conversations, most recent activity first.

    Only conversations with a currently accepted mentorship partner are
    returned.
    """

    def _load() -> ConversationListResponse:
        result = service.list_conversations(current_user.id)
        return ConversationListResponse(
            conversations=[
                ConversationResponse.from_summary(summary, result.users)
                for summary in result.conversations
            ],
            count=result.count,
        )

    try:
        return await asyncio.to_thread(_load)
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    response_model_by_alias=True,
    responses={401: {"description": "Not authenticated"}},
)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> UnreadCountResponse:
    try:
        total = await asyncio.to_thread(service.unread_count, current_user.id)
    except DomainException as e:
        handle_domain_exception(e)
    return UnreadCountResponse(unread_count=total)


@router.get(
    "/search",
    response_model=MessageSearchResponse,
    response_model_by_alias=True,
    responses={401: {"description": "Not authenticated"}},
)
async def search_messages(
    q: Optional[str] = Query(None, max_length=200, description="Text to search for"),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> MessageSearchResponse:
    def _search() -> MessageSearchResponse:
        messages = [MessageResponse.from_message(m) for m in service.search(current_user.id, q)]
        return MessageSearchResponse(messages=messages, count=len(messages))

    try:
        return await asyncio.to_thread(_search)
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/can-message/{user_id}",
    response_model=CanMessageResponse,
    response_model_by_alias=True,
    responses={401: {"description": "Not authenticated"}},
)
async def can_message(
    user_id: str,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> CanMessageResponse:
    allowed = await asyncio.to_thread(service.can_message, current_user.id, user_id)
    return CanMessageResponse(can_message=allowed)


@router.post(
    "/upload",
    response_model=UploadResponse,
    response_model_by_alias=True,
    responses={
        400: {"description": "Missing file, disallowed type or too large"},
        503: {"description": "Attachment storage unavailable"},
    },
)
async def upload_attachment(
    file: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    attachments: AttachmentService = Depends(get_attachment_service),
) -> UploadResponse:
    """Store an attachment and return the reference to put in a media message."""
    data = await file.read() if file is not None else b""
    try:
        stored = await asyncio.to_thread(
            attachments.upload,
            current_user.id,
            file.filename if file is not None else None,
            file.content_type if file is not None else None,
            data,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return UploadResponse(
        url=stored.url,
        public_id=stored.public_id,
        format=stored.format,
        size=stored.size,
        type=stored.type,
    )


@router.post(
    "",
    response_model=SendMessageResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing recipient or invalid content"},
        403: {"description": "No accepted mentorship connection"},
        404: {"description": "Recipient not found"},
    },
)
async def send_message(
    request: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> SendMessageResponse:
    """
    Send a message to an accepted mentorship partner.

    The message is durable once this returns; the realtime push to the
    recipient is best effort.
    """
    attachments = (
        [item.model_dump(exclude_none=True) for item in request.attachments]
        if request.attachments
        else None
    )

    def _send() -> SendMessageResponse:
        result = service.send_message(
            current_user.id,
            request.recipient_id,
            content=request.content,
            message_type=request.message_type,
            attachments=attachments,
        )
        return SendMessageResponse(
            message=MessageResponse.from_message(result.message),
            conversation_id=result.conversation.conversation_key,
        )

    try:
        response = await asyncio.to_thread(_send)
    except DomainException as e:
        handle_domain_exception(e)

    try:
        await publish_new_message(
            get_gateway(), response.message.recipient.id, response.message.to_event_payload()
        )
    except Exception as e:
        logger.error(
            "[REALTIME] New message push failed",
            extra={"message_id": response.message.id, "error": str(e)},
        )

    return response


# ============================================================================
# Dynamic routes
# ============================================================================


@router.put(
    "/mark-read/{recipient_id}",
    response_model=SuccessResponse,
    response_model_by_alias=True,
    responses={400: {"description": "Invalid user id"}},
)
async def mark_read(
    recipient_id: str,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> SuccessResponse:
    """Mark everything ``recipient_id`` sent the caller as read."""
    try:
        result = await asyncio.to_thread(service.mark_read, current_user.id, recipient_id)
    except DomainException as e:
        handle_domain_exception(e)

    if result.conversation_id is not None:
        try:
            await publish_messages_read(
                get_gateway(), recipient_id, current_user.id, result.read_at
            )
        except Exception as e:
            logger.error(
                "[REALTIME] Read receipt push failed",
                extra={"conversation_id": result.conversation_id, "error": str(e)},
            )

    return SuccessResponse(message="Messages marked as read")


@router.get(
    "/{recipient_id}",
    response_model=MessageListResponse,
    response_model_by_alias=True,
    responses={
        403: {"description": "No accepted mentorship connection"},
        404: {"description": "User not found"},
    },
)
async def get_messages(
    recipient_id: str,
    limit: Optional[int] = Query(None, ge=1, description="Page size"),
    before: Optional[datetime] = Query(None, description="Return messages older than this"),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> MessageListResponse:
    """Message history with ``recipient_id``, oldest first within the page."""

    def _load() -> MessageListResponse:
        page = service.list_messages(current_user.id, recipient_id, limit=limit, before=before)
        messages = [MessageResponse.from_message(m) for m in page.messages]
        return MessageListResponse(messages=messages, count=len(messages), has_more=page.has_more)

    try:
        return await asyncio.to_thread(_load)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete(
    "/{message_id}",
    response_model=SuccessResponse,
    response_model_by_alias=True,
    responses={
        403: {"description": "Not a participant of this message"},
        404: {"description": "Message not found"},
    },
)
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
) -> SuccessResponse:
    """
    Delete a message from the caller's view.

    The row stays visible to the other participant until they delete it too.
    """
    try:
        await asyncio.to_thread(service.delete_message, current_user.id, message_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SuccessResponse(message="Message deleted")
