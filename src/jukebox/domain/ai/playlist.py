"""
AI playlist generation for auto-replenishment.

Talks to any OpenAI-compatible chat completions endpoint (OpenAI itself, or a
keyless proxy such as text.pollinations.ai) and turns the answer into a list
of searchable songs.
"""

import asyncio
import json
import random
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import openai
from loguru import logger

from jukebox.core.config import AIConfig
from jukebox.domain.exceptions import AIError

SYSTEM_PROMPT = (
    "You are a music playlist generator. Return only valid JSON, no markdown or explanation."
)

_FENCE_PATTERN = re.compile(r"```(?:json)?\n?")
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class PlaylistSong:
    """A generated suggestion; search_query is also its de-duplication id."""

    search_query: str
    title: str
    artist: Optional[str] = None


@dataclass
class GeneratedPlaylist:
    name: str
    description: str
    songs: list[PlaylistSong] = field(default_factory=list)


class ReplenishProvider(Protocol):
    """Anything that can suggest more songs for a free-text description."""

    async def generate(self, description: str, count: int) -> list[PlaylistSong]: ...


def build_prompt(description: str, count: int) -> str:
    return f"""Generate a music playlist of exactly {count} songs for: "{description}"

Return ONLY a valid JSON object with this exact structure (no markdown):
{{"name":"Playlist Name","description":"mood description","songs":[{{"searchQuery":"Artist - Song Title","title":"Song Title","artist":"Artist Name"}}]}}

Rules:
- searchQuery must be "Artist - Song Title" format for YouTube search
- Include popular, well-known songs that match the mood"""


def parse_playlist_content(content: str, description: str) -> GeneratedPlaylist:
    """Parse the model's reply, tolerating markdown fences and chatter.

    Raises:
        AIError: If no JSON object can be found or decoded
    """
    cleaned = _FENCE_PATTERN.sub("", content).strip()
    match = _OBJECT_PATTERN.search(cleaned)
    if not match:
        raise AIError("No valid JSON found in response")

    try:
        data: dict[str, Any] = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIError(f"Invalid JSON in response: {e}") from e

    songs = []
    for entry in data.get("songs") or []:
        if not isinstance(entry, dict):
            continue
        query = entry.get("searchQuery") or entry.get("search_query")
        if not query:
            artist, title = entry.get("artist"), entry.get("title")
            if not title:
                continue
            query = f"{artist} - {title}" if artist else title
        songs.append(
            PlaylistSong(
                search_query=query.strip(),
                title=entry.get("title") or query,
                artist=entry.get("artist"),
            )
        )

    return GeneratedPlaylist(
        name=data.get("name") or f"{description} Playlist",
        description=data.get("description") or description,
        songs=songs,
    )


class AIPlaylistProvider:
    """ReplenishProvider backed by a chat completions endpoint."""

    def __init__(self, config: AIConfig, client: Optional[openai.OpenAI] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            self._client = openai.OpenAI(
                base_url=self.config.base_url,
                # Keyless proxies still need a non-empty value for the client
                api_key=self.config.api_key or "unused",
                timeout=self.config.timeout,
            )
        return self._client

    def generate_playlist(
        self, description: str, count: int, shuffle: bool = True
    ) -> GeneratedPlaylist:
        """Generate a playlist for a mood/genre description. Blocking.

        Raises:
            AIError: If the request fails or the reply cannot be parsed
        """
        logger.info(f"Generating AI playlist: \"{description}\" with {count} songs")

        try:
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(description, count)},
                ],
                temperature=self.config.temperature,
            )
        except openai.OpenAIError as e:
            logger.error(f"AI playlist generation failed: {e}")
            raise AIError(f"Failed to generate playlist: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AIError("Empty response from playlist generator")

        playlist = parse_playlist_content(content, description)
        if shuffle:
            random.shuffle(playlist.songs)

        logger.info(f"Generated playlist \"{playlist.name}\" with {len(playlist.songs)} songs")
        return playlist

    async def generate(self, description: str, count: int) -> list[PlaylistSong]:
        playlist = await asyncio.to_thread(self.generate_playlist, description, count)
        return playlist.songs
