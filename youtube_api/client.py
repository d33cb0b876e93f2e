import logging
import time
import urllib.parse
from typing import Any, Dict, List, Optional

import httpx

from .auth import YouTubeOAuth
from .errors import YouTubeAPIError
from .playlist import Playlist, Video

logger = logging.getLogger(__name__)

# videos.list accepts at most 50 ids per call.
VIDEO_BATCH_SIZE = 50


def playlist_id_from_url(playlist_url: str) -> str:
    parsed = urllib.parse.urlparse(str(playlist_url or "").strip())
    values = urllib.parse.parse_qs(parsed.query).get("list") or [""]
    playlist_id = values[0].strip()
    if not playlist_id:
        raise ValueError(f"No playlist id (list=...) in URL: {playlist_url!r}")
    return playlist_id


class YouTubeClient:
    """Thin YouTube Data API v3 client for playlist reads and writes.

    Every request asks YouTubeOAuth for an authenticated transport, so an
    expired access token is refreshed (or the user is sent back to login)
    before the call goes out.

    Retry behavior:
    - 429 and 5xx: exponential backoff, up to youtube_max_retries
    - anything else >= 400: YouTubeAPIError
    """

    def __init__(self, auth: YouTubeOAuth, *, config: Optional[Dict[str, Any]] = None):
        self.auth = auth
        self.config = config if config is not None else auth.config

    # -----------------
    # HTTP helpers
    # -----------------

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        max_retries = int(self.config.get("youtube_max_retries", 3))
        backoff_base = float(self.config.get("youtube_backoff_base", 1.0))
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        attempt = 0
        while True:
            attempt += 1
            client, _ = self.auth.get_authenticated_client()
            try:
                with client:
                    resp = client.request(method.upper(), path, params=query, json=json_body)
            except httpx.HTTPError as e:
                if attempt <= max_retries:
                    time.sleep(min(30.0, backoff_base * (2 ** (attempt - 1))))
                    continue
                raise YouTubeAPIError(f"YouTube API request failed: {e}") from e

            status = resp.status_code
            if (status == 429 or status >= 500) and attempt <= max_retries:
                delay = backoff_base * (2 ** (attempt - 1))
                logger.warning("YouTube API %s %s returned %s; retrying in %.1fs", method, path, status, delay)
                time.sleep(min(60.0, delay))
                continue

            if status >= 400:
                raise YouTubeAPIError(f"YouTube API error {status}: {resp.text}", status_code=status)

            if not resp.content:
                return {}

            try:
                return resp.json()
            except ValueError as e:
                raise YouTubeAPIError(f"YouTube API response was not JSON (status {status}): {resp.text}") from e

    def _paginate(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch all pages for a list endpoint that returns {items, nextPageToken}."""

        out: List[Dict[str, Any]] = []
        page_token: Optional[str] = None

        while True:
            page = self.request_json("GET", path, params={**(params or {}), "pageToken": page_token})
            items = page.get("items") or []
            out.extend([x for x in items if isinstance(x, dict)])

            page_token = page.get("nextPageToken")
            if not page_token:
                break

        return out

    # -----------------
    # Reads
    # -----------------

    def get_my_playlists(self, *, with_videos: bool = False) -> List[Playlist]:
        items = self._paginate(
            "/playlists",
            params={"part": "id,snippet,contentDetails", "mine": "true", "maxResults": 50},
        )
        if not items:
            logger.warning("No YouTube playlists found")

        playlists = [self._playlist_from_item(item) for item in items]
        if with_videos:
            for p in playlists:
                p.videos = self.get_playlist_videos(p.id)
        return playlists

    def get_playlist_by_id(self, playlist_id: str) -> Playlist:
        page = self.request_json("GET", "/playlists", params={"part": "id,snippet", "id": playlist_id})
        items = page.get("items") or []
        if not items:
            raise YouTubeAPIError(f"Playlist not found: {playlist_id}", status_code=404)

        playlist = self._playlist_from_item(items[0])
        playlist.videos = self.get_playlist_videos(playlist_id)
        return playlist

    def get_playlist_by_url(self, playlist_url: str) -> Playlist:
        return self.get_playlist_by_id(playlist_id_from_url(playlist_url))

    def get_playlist_videos(self, playlist_id: str) -> List[Video]:
        items = self._paginate(
            "/playlistItems",
            params={"part": "contentDetails", "playlistId": playlist_id, "maxResults": 50},
        )
        video_ids = [
            str((item.get("contentDetails") or {}).get("videoId") or "")
            for item in items
        ]
        video_ids = [v for v in video_ids if v]

        by_id: Dict[str, Video] = {}
        for start in range(0, len(video_ids), VIDEO_BATCH_SIZE):
            batch = video_ids[start:start + VIDEO_BATCH_SIZE]
            page = self.request_json(
                "GET",
                "/videos",
                params={"part": "snippet,contentDetails", "id": ",".join(batch), "maxResults": 50},
            )
            for item in page.get("items") or []:
                try:
                    video = Video.from_api_item(item)
                except ValueError as e:
                    logger.warning("Skipping video %s: %s", item.get("id"), e)
                    continue
                by_id[video.id] = video

        # Deleted/private videos are missing from videos.list; keep playlist order for the rest.
        return [by_id[v] for v in video_ids if v in by_id]

    @staticmethod
    def _playlist_from_item(item: Dict[str, Any]) -> Playlist:
        snippet = item.get("snippet") or {}
        return Playlist(
            id=str(item.get("id") or ""),
            title=str(snippet.get("title") or ""),
            channel_id=str(snippet.get("channelId") or ""),
        )

    # -----------------
    # Writes
    # -----------------

    def save_playlist(self, title: str, playlist: Playlist, *, privacy: Optional[str] = None) -> str:
        """Create a new playlist called ``title`` holding ``playlist.videos`` in order."""

        privacy_status = privacy or str(self.config.get("youtube_new_playlist_privacy", "public"))
        created = self.request_json(
            "POST",
            "/playlists",
            params={"part": "snippet,status"},
            json_body={
                "snippet": {"title": title, "description": ""},
                "status": {"privacyStatus": privacy_status},
            },
        )
        new_id = str(created.get("id") or "")
        if not new_id:
            raise YouTubeAPIError(f"Playlist creation returned no id: {created}")
        logger.info("Created YouTube playlist %s", new_id)

        for video in playlist.videos:
            self.request_json(
                "POST",
                "/playlistItems",
                params={"part": "snippet"},
                json_body={
                    "snippet": {
                        "playlistId": new_id,
                        "resourceId": {"kind": "youtube#video", "videoId": video.id},
                    }
                },
            )

        return new_id

    def delete_playlist(self, playlist_id: str) -> None:
        self.request_json("DELETE", "/playlists", params={"id": playlist_id})
        logger.info("Deleted YouTube playlist %s", playlist_id)

    def reorder_playlist(self, playlist_id: str, criteria: str, title: str, *, reverse: bool = False) -> str:
        """Load a playlist, sort it by ``criteria`` and save the result as a new playlist."""

        if not playlist_id:
            raise ValueError("playlist_id cannot be empty")

        playlist = self.get_playlist_by_id(playlist_id)
        playlist.sort_by(criteria, reverse=reverse)
        logger.info("Reordered playlist %s by %s (%d videos)", playlist_id, criteria, len(playlist.videos))
        return self.save_playlist(title, playlist)
