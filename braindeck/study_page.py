import flet as ft
from typing import List, Optional

from braindeck import filework
from braindeck.card_state import Card
from braindeck.filework import Deck
from braindeck.review_service import StudySession
from braindeck.srs import GRADE_MAP

GRADE_LABELS = {value: name.capitalize() for name, value in GRADE_MAP.items()}
GRADE_COLORS = {
    1: ft.Colors.RED_200,
    2: ft.Colors.ORANGE_200,
    3: ft.Colors.GREEN_200,
    4: ft.Colors.BLUE_200,
}


class StudyCard(ft.Container):
    """Front/back view of the card currently being studied."""

    def __init__(self, session: StudySession, on_change=None):
        super().__init__()
        self.session = session
        self.on_change = on_change
        self.flipped = False

        self.front_text = ft.Text("", size=36, weight=ft.FontWeight.BOLD, text_align=ft.TextAlign.CENTER)
        self.back_text = ft.Text("", size=24, text_align=ft.TextAlign.CENTER, visible=False)
        self.progress_text = ft.Text("", size=12, color=ft.Colors.GREY)

        self.show_button = ft.ElevatedButton("Show answer", on_click=self.flip)
        self.grade_buttons = ft.Row(controls=[], alignment=ft.MainAxisAlignment.SPACE_EVENLY, visible=False)

        self.content = ft.Column(
            controls=[
                self.progress_text,
                ft.Container(
                    content=ft.Column(
                        controls=[self.front_text, self.back_text],
                        alignment=ft.MainAxisAlignment.CENTER,
                        horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                    ),
                    expand=True,
                    alignment=ft.alignment.center,
                    bgcolor=ft.Colors.GREY_50,
                    border_radius=20,
                    padding=20,
                ),
                self.show_button,
                self.grade_buttons,
            ],
            expand=True,
            horizontal_alignment=ft.CrossAxisAlignment.CENTER,
        )
        self.expand = True
        self.bgcolor = ft.Colors.GREY_200
        self.border_radius = 20
        self.padding = 10
        self.refresh()

    def refresh(self):
        card = self.session.current_card
        self.flipped = False
        if card is None:
            self.front_text.value = "Session complete"
            self.back_text.value = f"{self.session.cards_studied} cards studied"
            self.back_text.visible = True
            self.show_button.visible = False
            self.grade_buttons.visible = False
            self.progress_text.value = ""
            return

        self.front_text.value = card.front
        self.back_text.value = card.back
        self.back_text.visible = False
        self.show_button.visible = True
        self.grade_buttons.visible = False
        self.progress_text.value = f"Card {self.session.index + 1} of {len(self.session.cards)}"

        preview = self.session.preview()
        self.grade_buttons.controls = [
            ft.ElevatedButton(
                f"{GRADE_LABELS[grade]} ({preview[grade]})",
                bgcolor=GRADE_COLORS[grade],
                on_click=lambda e, grade=grade: self.grade(grade),
            )
            for grade in sorted(GRADE_LABELS)
        ]

    def flip(self, e):
        self.flipped = True
        self.back_text.visible = True
        self.show_button.visible = False
        self.grade_buttons.visible = True
        self.update()

    def grade(self, grade: int):
        self.session.grade(grade)
        if self.session.finished:
            self.session.finish()
        self.refresh()
        self.update()
        if self.on_change is not None:
            self.on_change()


class StudyPage(ft.Container):
    def __init__(self, user_id: Optional[str] = None):
        super().__init__()
        self.user_id = user_id
        self.session: Optional[StudySession] = None
        self.open_deck_id: Optional[str] = None

        self.title = ft.Container(
            content=ft.Text(value="Pick a deck to study...", size=48, weight=ft.FontWeight.BOLD),
            bgcolor=ft.Colors.AMBER_100,
            padding=10,
            border_radius=20,
            expand=True,
        )
        self.add_button = ft.FloatingActionButton(
            text="Add New Deck",
            icon=ft.Icons.ADD,
            width=180,
            height=80,
            bgcolor=ft.Colors.ORANGE_300,
            on_click=self.to_import_page,
        )
        self.top_display = ft.Row(
            controls=[self.title, self.add_button],
            alignment=ft.MainAxisAlignment.CENTER,
        )

        self.deck_list = ft.Column(controls=[], scroll=ft.ScrollMode.AUTO, expand=True)
        self.study_area = ft.Container(
            content=ft.Text("No deck selected", size=20, color=ft.Colors.GREY),
            expand=True,
            alignment=ft.alignment.center,
        )

        # Adding cards to the open deck
        self.front_field = ft.TextField(label="Front", expand=True)
        self.back_field = ft.TextField(label="Back", expand=True)
        self.card_form = ft.Row(
            controls=[
                self.front_field,
                self.back_field,
                ft.ElevatedButton("Add card", icon=ft.Icons.ADD, on_click=self.add_card),
            ],
            visible=False,
        )

        self.content_display = ft.Row(
            controls=[
                ft.Container(
                    content=self.deck_list,
                    expand=3,
                    bgcolor=ft.Colors.GREY_100,
                    padding=20,
                    border_radius=20,
                ),
                ft.Column(controls=[self.study_area, self.card_form], expand=7),
            ],
            expand=True,
        )

        # Import page (initially invisible)
        self.path_field = ft.TextField(label="Spreadsheet (.xlsx, .xls or .csv) with Front/Back columns")
        self.subject_field = ft.TextField(label="Subject")
        self.import_status = ft.Text("", size=12, color=ft.Colors.GREY)
        self.import_page = ft.Container(
            content=ft.Column(
                controls=[
                    ft.Container(
                        content=ft.Text(value="Add a deck from...", size=48, weight=ft.FontWeight.BOLD),
                        bgcolor=ft.Colors.AMBER_100,
                        padding=10,
                        border_radius=20,
                    ),
                    self.path_field,
                    self.subject_field,
                    ft.Row(
                        controls=[
                            ft.FloatingActionButton(text="Import spreadsheet", expand=True, on_click=self.import_deck),
                            ft.FloatingActionButton(text="Return to home", expand=True, on_click=self.return_to_home),
                        ]
                    ),
                    self.import_status,
                ],
                alignment=ft.MainAxisAlignment.CENTER,
            ),
            expand=True,
            padding=50,
            bgcolor=ft.Colors.ORANGE_100,
            visible=False,
        )

        self.mainpage = ft.Column(
            controls=[self.top_display, self.content_display, self.import_page],
            expand=True,
        )
        self.content = self.mainpage
        self.expand = True
        self.display_decks(filework.list_decks(user_id=user_id))

    def display_decks(self, decks: List[Deck]):
        if not decks:
            self.deck_list.controls = [ft.Text(f"No decks found in {filework.DECK_ROOT}")]
            return
        self.deck_list.controls = [
            ft.ListTile(
                title=ft.Text(deck.title),
                subtitle=ft.Text(f"{deck.subject} - {deck.card_count} cards"),
                trailing=ft.IconButton(
                    icon=ft.Icons.DELETE,
                    tooltip="Delete deck",
                    on_click=lambda e, deck_id=deck.deck_id: self.delete_deck(deck_id),
                ),
                on_click=lambda e, deck_id=deck.deck_id: self.open_deck(deck_id),
            )
            for deck in decks
        ]

    # The functions for the buttons of the import page
    def to_import_page(self, e):
        self.import_status.value = ""
        self.import_page.visible = True
        self.top_display.visible = False
        self.content_display.visible = False
        self.mainpage.update()

    def return_to_home(self, e):
        self.import_page.visible = False
        self.top_display.visible = True
        self.content_display.visible = True
        self.mainpage.update()

    def import_deck(self, e):
        path = (self.path_field.value or "").strip()
        if not path:
            self.import_status.value = "Enter the path of a spreadsheet first"
            self.import_status.update()
            return
        try:
            deck = filework.import_deck_from_spreadsheet(path, subject=(self.subject_field.value or "").strip())
        except (FileNotFoundError, ValueError) as exc:
            self.import_status.value = str(exc)
            self.import_status.update()
            return
        self.path_field.value = ""
        self.subject_field.value = ""
        self.display_decks(filework.list_decks(user_id=self.user_id))
        self.open_deck(deck.deck_id, refresh=False)
        self.return_to_home(e)

    def delete_deck(self, deck_id: str):
        filework.delete_deck(deck_id)
        if self.open_deck_id == deck_id:
            self.session = None
            self.open_deck_id = None
            self.card_form.visible = False
            self.study_area.content = ft.Text("No deck selected", size=20, color=ft.Colors.GREY)
        self.display_decks(filework.list_decks(user_id=self.user_id))
        self.mainpage.update()

    def open_deck(self, deck_id: str, refresh: bool = True):
        if self.session is not None and not self.session.finished:
            self.session.finish()
        self.open_deck_id = deck_id
        self.session = StudySession.from_deck(deck_id, user_id=self.user_id, due_only=True)
        self.study_area.content = StudyCard(self.session, on_change=self.refresh_decks)
        self.card_form.visible = True
        if refresh:
            self.content_display.update()

    def add_card(self, e):
        front = (self.front_field.value or "").strip()
        back = (self.back_field.value or "").strip()
        if self.open_deck_id is None or not front:
            return
        filework.add_cards(self.open_deck_id, [Card.new(self.open_deck_id, front, back)])
        self.front_field.value = ""
        self.back_field.value = ""
        self.refresh_decks()
        self.card_form.update()

    def refresh_decks(self):
        self.display_decks(filework.list_decks(user_id=self.user_id))
        self.deck_list.update()
