import questionary

MAIN_MENU_CHOICES = [
    "My playlists",
    "Open playlist by URL",
    "Account (login / logout)",
    "Exit",
]


def main_menu() -> str:
    choice = questionary.select(
        "📺 YouTube Playlist Reorder — What would you like to do?",
        choices=MAIN_MENU_CHOICES,
    ).ask()
    # Ctrl-C at the prompt returns None.
    return choice or "Exit"
