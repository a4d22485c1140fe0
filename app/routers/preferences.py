"""
Voice, preference and usage endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_preference_store, get_rate_limiter
from app.schemas.envelope import DEFAULT_VOICE
from app.schemas.preferences import PreferencesResponse, PreferencesUpdate, VoiceListResponse, UsageResponse
from app.services.preferences import AVAILABLE_VOICES, PreferenceStore
from app.services.rate_limiter import RateLimiter


router = APIRouter(tags=['preferences'])


@router.get('/voices', response_model=VoiceListResponse)
async def list_voices() -> VoiceListResponse:
    """List the provider voices an owner can choose from."""
    return VoiceListResponse(voices=AVAILABLE_VOICES, default=DEFAULT_VOICE)


@router.get('/owners/{owner_id}/preferences', response_model=PreferencesResponse)
async def get_preferences(
    owner_id: str,
    store: PreferenceStore = Depends(get_preference_store),
) -> PreferencesResponse:
    prefs = await store.get(owner_id)
    return PreferencesResponse(voice=prefs.voice, speed=prefs.speed, instructions=prefs.instructions)


@router.put('/owners/{owner_id}/preferences', response_model=PreferencesResponse)
async def update_preferences(
    owner_id: str,
    update: PreferencesUpdate,
    store: PreferenceStore = Depends(get_preference_store),
) -> PreferencesResponse:
    """
    Update any of voice, speed and instructions.

    Jobs already queued keep the preferences they were admitted with.
    """
    try:
        if update.voice is not None:
            await store.set_voice(owner_id, update.voice)
        if update.speed is not None:
            await store.set_speed(owner_id, update.speed)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if update.instructions is not None:
        await store.set_instructions(owner_id, update.instructions)

    prefs = await store.get(owner_id)
    return PreferencesResponse(voice=prefs.voice, speed=prefs.speed, instructions=prefs.instructions)


@router.get('/owners/{owner_id}/usage', response_model=UsageResponse)
async def get_usage(
    owner_id: str,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> UsageResponse:
    """Requests in the current minute and characters used today."""
    stats = await limiter.usage(owner_id)
    return UsageResponse(
        owner_id=owner_id,
        minute_requests=stats.minute_requests,
        minute_limit=limiter.requests_per_minute,
        day_chars=stats.day_chars,
        day_limit=limiter.chars_per_day,
    )
