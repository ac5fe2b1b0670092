"""
AI domain module.

Playlist generation used to auto-replenish an empty request queue.
"""

from .playlist import (
    AIPlaylistProvider,
    GeneratedPlaylist,
    PlaylistSong,
    ReplenishProvider,
    parse_playlist_content,
)

__all__ = [
    "AIPlaylistProvider",
    "GeneratedPlaylist",
    "PlaylistSong",
    "ReplenishProvider",
    "parse_playlist_content",
]
