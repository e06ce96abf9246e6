import os

import flet as ft
from braindeck.study_page import StudyPage


def main(page: ft.Page):
    page.title = "BrainDeck"
    page.window.width = 1100
    page.window.height = 780
    page.window.center()
    page.padding = 30

    # Several learners can share one data directory.
    page.add(StudyPage(user_id=os.environ.get("BRAINDECK_USER") or None))


if __name__ == "__main__":
    ft.app(target=main)
