"""
Per-owner voice preferences stored as a Redis hash.

Readers always get a fresh immutable ``Preferences`` snapshot; the worker
only ever sees the snapshot captured when its job was admitted.
"""
from typing import Optional

from redis.asyncio import Redis

from app.config import KEY_PREFIX
from app.schemas.envelope import Preferences, DEFAULT_VOICE, MIN_SPEED, MAX_SPEED


AVAILABLE_VOICES = [
    'alloy', 'ash', 'ballad', 'coral', 'echo',
    'fable', 'nova', 'onyx', 'sage', 'shimmer', 'verse',
]


def is_valid_voice(voice: str) -> bool:
    return voice in AVAILABLE_VOICES


class PreferenceStore:
    def __init__(self, redis: Redis, key_prefix: str = KEY_PREFIX):
        self._redis = redis
        self._prefix = key_prefix

    def _key(self, owner_id: str) -> str:
        return f'{self._prefix}:prefs:{owner_id}'

    async def get(self, owner_id: str) -> Preferences:
        data = await self._redis.hgetall(self._key(owner_id))
        if not data:
            return Preferences()

        return Preferences(
            voice=data.get('voice') or DEFAULT_VOICE,
            speed=float(data['speed']) if data.get('speed') else 1.0,
            instructions=data.get('instructions') or None,
        )

    async def set_voice(self, owner_id: str, voice: str):
        voice = voice.lower()
        if not is_valid_voice(voice):
            raise ValueError(f'Unknown voice: {voice}')
        await self._redis.hset(self._key(owner_id), 'voice', voice)

    async def set_speed(self, owner_id: str, speed: float):
        if not MIN_SPEED <= speed <= MAX_SPEED:
            raise ValueError(f'Speed must be between {MIN_SPEED} and {MAX_SPEED}')
        await self._redis.hset(self._key(owner_id), 'speed', str(speed))

    async def set_instructions(self, owner_id: str, instructions: Optional[str]):
        """Set the tone/style text; None or blank clears it."""
        if instructions is None or not instructions.strip():
            await self._redis.hdel(self._key(owner_id), 'instructions')
        else:
            await self._redis.hset(self._key(owner_id), 'instructions', instructions.strip())
