"""
Message inbox endpoints: what the service has told each owner.
"""
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import AUDIO_EXTENSION, AUDIO_MEDIA_TYPE
from app.database import get_db
from app.models import Message, MessageKind
from app.schemas.message import MessageResponse, MessageListResponse


router = APIRouter(tags=['messages'])


@router.get('/owners/{owner_id}/messages', response_model=MessageListResponse)
async def list_messages(
    owner_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    """
    List the owner's messages, oldest first.

    Status messages disappear once their job finishes; delivered audio is
    fetched through ``/messages/{id}/audio``.
    """
    result = await db.execute(
        select(Message)
        .where(Message.owner_id == owner_id)
        .order_by(Message.created_at.asc())
        .limit(limit)
    )
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in result.scalars().all()],
    )


@router.get('/messages/{message_id}/audio')
async def get_message_audio(
    message_id: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Stream delivered audio.

    Raises:
        404: Message not found, not an audio message, or file missing
    """
    result = await db.execute(select(Message).where(Message.id == message_id))
    message = result.scalar_one_or_none()

    if not message or message.kind != MessageKind.audio.value:
        raise HTTPException(status_code=404, detail=f'Audio message not found: {message_id}')

    if not message.audio_path or not Path(message.audio_path).exists():
        raise HTTPException(status_code=404, detail='Audio file not found')

    timestamp_part = message.created_at.strftime('%Y%m%d-%H%M%S') if message.created_at else 'audio'
    return FileResponse(
        path=message.audio_path,
        media_type=AUDIO_MEDIA_TYPE,
        filename=f'speech-{timestamp_part}.{AUDIO_EXTENSION}',
    )
