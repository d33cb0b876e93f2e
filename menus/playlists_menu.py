import questionary

from utils.logger import log_error, log_info, log_success, log_warning
from youtube_api.client import YouTubeClient
from youtube_api.errors import YouTubeAPIError, YouTubeAuthError
from youtube_api.playlist import Playlist, SORT_KEYS

PREVIEW_LIMIT = 15

SORT_LABELS = {
    "title": "Title (A → Z)",
    "duration": "Duration (shortest first)",
    "published": "Publish date (oldest first)",
    "language": "Audio language",
}


def _format_duration(td) -> str:
    total = int(td.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}" if hours else f"{minutes}:{seconds:02d}"


def print_playlist(playlist: Playlist, *, limit: int = PREVIEW_LIMIT) -> None:
    print("\n" + "=" * 60)
    print(f"🎵 {playlist.title} ({len(playlist.videos)} videos, {_format_duration(playlist.total_duration)})")
    print("=" * 60)
    for i, v in enumerate(playlist.videos[:limit], start=1):
        published = v.published_at.strftime("%Y-%m-%d") if v.published_at else "????-??-??"
        print(f"{i:>3}. {v.title} — {v.artist} [{_format_duration(v.duration)}] {published} {v.language}")
    if len(playlist.videos) > limit:
        print(f"     ... and {len(playlist.videos) - limit} more")
    print("=" * 60)


def reorder_playlist_menu(client: YouTubeClient, playlist: Playlist) -> None:
    key = questionary.select(
        "Sort videos by:",
        choices=[questionary.Choice(title=SORT_LABELS.get(k, k), value=k) for k in SORT_KEYS],
    ).ask()
    if not key:
        return

    reverse = bool(questionary.confirm("Reverse the order?", default=False).ask())
    playlist.sort_by(key, reverse=reverse)
    print_playlist(playlist)

    if not questionary.confirm("Save this order as a new playlist?", default=True).ask():
        log_info("Reorder discarded.")
        return

    title = questionary.text("New playlist title:", default=f"{playlist.title} (sorted by {key})").ask()
    title = (title or "").strip()
    if not title:
        log_warning("No title given; reorder discarded.")
        return

    new_id = client.save_playlist(title, playlist)
    log_success(f"Saved '{title}' (https://www.youtube.com/playlist?list={new_id})")

    if questionary.confirm(f"Delete the original playlist '{playlist.title}'?", default=False).ask():
        client.delete_playlist(playlist.id)
        log_success(f"Deleted '{playlist.title}'.")


def my_playlists_menu(client: YouTubeClient) -> None:
    try:
        playlists = client.get_my_playlists()
        if not playlists:
            log_info("No playlists found for this account.")
            return

        choices = [questionary.Choice(title=p.title or "(untitled)", value=p.id) for p in playlists]
        choices.append(questionary.Choice(title="Back", value=""))
        playlist_id = questionary.select("Pick a playlist:", choices=choices).ask()
        if not playlist_id:
            return

        log_info("Loading playlist videos...")
        playlist = client.get_playlist_by_id(playlist_id)
        print_playlist(playlist)
        reorder_playlist_menu(client, playlist)
    except YouTubeAuthError as e:
        log_error("You need to log in again.", e)
    except YouTubeAPIError as e:
        log_error("YouTube request failed.", e)


def playlist_by_url_menu(client: YouTubeClient) -> None:
    url = questionary.text("Paste a YouTube playlist URL (…?list=...):").ask()
    url = (url or "").strip()
    if not url:
        return

    try:
        playlist = client.get_playlist_by_url(url)
        print_playlist(playlist)
        reorder_playlist_menu(client, playlist)
    except ValueError as e:
        log_error(str(e))
    except YouTubeAuthError as e:
        log_error("You need to log in again.", e)
    except YouTubeAPIError as e:
        log_error("YouTube request failed.", e)
