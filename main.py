import pygame
import sys
import math
import random

from classes import (
    CLEAR_SCREEN, GAME_SCREEN, LEVELS, START_SCREEN,
    CardState, Display, RoundEngine, format_time,
)
from database import MemoryDatabase, get_database
from scheduler import Scheduler
from settings import load_settings

# Only the display and fonts are needed
pygame.display.init()
pygame.font.init()

# Load settings at startup
SETTINGS = load_settings()

# Colors
WHITE = (255, 255, 255)
BLACK = (0, 0, 0)
GRAY = (200, 200, 200)
BLUE = (0, 100, 255)
GREEN = (0, 200, 0)
RED = (200, 0, 0)
YELLOW = (255, 255, 0)
CARD_BACK_COLOR = (50, 50, 200)
CARD_FRONT_COLOR = (220, 220, 255)
CARD_MATCHED_COLOR = (200, 255, 200)
CONFETTI_COLORS = [(255, 107, 107), (78, 205, 196), (69, 183, 209), (254, 202, 87), (255, 159, 243)]

# Fonts
FONT_SMALL = pygame.font.SysFont('Arial', 20)
FONT_MEDIUM = pygame.font.SysFont('Arial', 30)
FONT_LARGE = pygame.font.SysFont('Arial', 40)
FONT_CARD = pygame.font.SysFont('segoeuiemoji,notocoloremoji,applecoloremoji,symbola,arial', 40)

# Game settings
FPS = int(SETTINGS["fps"])
CARD_MARGIN = 10
FLIP_DURATION = 300  # milliseconds
CONFETTI_COUNT = 100
LEVEL_COLUMNS = {8: 4, 12: 4, 16: 4}
LEVEL_NAMES = {8: "Easy", 12: "Normal", 16: "Hard"}


def get_game_database(mode="local", server_url=None, db_file="memory_game.db"):
    """
    Factory function to get the appropriate best-time store.

    Args:
        mode: 'local' for the SQLite file, 'remote' for the server-synchronized store,
              'memory' to keep nothing between runs
        server_url: URL of the remote server, required for 'remote' mode
        db_file: SQLite file for local records

    Returns:
        Store with get/set for best times
    """
    if mode == "memory":
        print("Using in-memory store - best times are not kept")
        return MemoryDatabase()

    if mode == "remote" and server_url:
        try:
            from database_sync import get_sync_database
            db = get_sync_database(server_url=server_url, db_file=db_file)
            print(f"Using server at {server_url} - your best times follow you")
            return db
        except Exception as e:
            # If there's an error, fall back to local database
            print(f"Error initializing sync database: {e}")
            print("Falling back to local database")

    print("Using local database only - your best times will be stored locally")
    return get_database(db_file)


class GameGUI(Display):
    """Graphical user interface for the memory card game."""

    def __init__(self):
        """Initialize the game GUI."""
        self.engine = None
        self.clock = pygame.time.Clock()
        self.screen = None
        self.width = 800
        self.height = 600
        self.card_width = 80
        self.card_height = 100
        self.board_margin_top = 120
        self.board_margin_left = 0
        self.columns = 4

        self.screen_id = START_SCREEN
        self.level = None
        self.card_states = []
        self.moves = 0
        self.matched = 0
        self.total_pairs = 0
        self.timer_text = format_time(0)
        self.best_scores = {}
        self.report = None

        self.flipping_cards = {}  # index -> (start_ticks, is_flipping_up)
        self.particles = []
        self.buttons = {}
        self.text_cache = {}  # Cache for rendered text

    def setup_window(self):
        """Set up the game window."""
        self.screen = pygame.display.set_mode((self.width, self.height))
        pygame.display.set_caption("Memory Card Game")

    # Notifications from the engine

    def render_board(self, level, card_count):
        self.level = level
        self.card_states = [CardState.FACE_DOWN] * card_count
        self.flipping_cards = {}
        self.report = None
        self.layout_board(level, card_count)

    def set_card_state(self, index, state):
        previous = self.card_states[index]
        self.card_states[index] = state
        if previous is CardState.FACE_DOWN and state is CardState.FACE_UP:
            self.flipping_cards[index] = (pygame.time.get_ticks(), True)
        elif previous is CardState.FACE_UP and state is CardState.FACE_DOWN:
            self.flipping_cards[index] = (pygame.time.get_ticks(), False)

    def update_move_count(self, moves):
        self.moves = moves

    def update_matched_count(self, matched, total):
        self.matched = matched
        self.total_pairs = total

    def update_timer(self, formatted):
        self.timer_text = formatted

    def show_completion(self, report):
        self.report = report

    def play_celebration(self):
        """Drop a burst of confetti from the top of the window."""
        self.particles = [
            {
                "x": random.random() * self.width,
                "y": -10.0,
                "vx": (random.random() - 0.5) * 4,
                "vy": random.random() * 3 + 2,
                "color": random.choice(CONFETTI_COLORS),
                "size": random.random() * 6 + 4,
            }
            for _ in range(CONFETTI_COUNT)
        ]

    def switch_screen(self, screen_id):
        self.screen_id = screen_id

    def update_best_scores(self, table):
        self.best_scores = dict(table)

    # Layout

    def layout_board(self, level, card_count):
        """Size and center the cards for the deck."""
        self.columns = LEVEL_COLUMNS.get(level, 4)
        rows = math.ceil(card_count / self.columns)

        max_card_width = (self.width - CARD_MARGIN * (self.columns + 1)) // self.columns
        max_card_height = (self.height - self.board_margin_top - CARD_MARGIN * (rows + 1)) // rows

        # Keep aspect ratio
        self.card_width = int(min(max_card_width, max_card_height * 0.8, 110))
        self.card_height = int(self.card_width * 1.25)

        self.board_margin_left = (self.width - (self.columns * self.card_width + (self.columns - 1) * CARD_MARGIN)) // 2

    def get_card_rect(self, index):
        """Get the rectangle for the card at the given deck index."""
        row, col = divmod(index, self.columns)
        x = self.board_margin_left + col * (self.card_width + CARD_MARGIN)
        y = self.board_margin_top + row * (self.card_height + CARD_MARGIN)
        return pygame.Rect(x, y, self.card_width, self.card_height)

    def get_card_at_pos(self, pos):
        """Get the deck index of the card at the given screen position."""
        for index in range(len(self.card_states)):
            if self.get_card_rect(index).collidepoint(pos):
                return index
        return None

    # Drawing

    def render_text(self, font, text, color):
        """Render and cache text to avoid recreating text surfaces."""
        cache_key = (font, text, color)
        if cache_key not in self.text_cache:
            if len(self.text_cache) > 100:
                self.text_cache.clear()
            self.text_cache[cache_key] = font.render(text, True, color)
        return self.text_cache[cache_key]

    def blit_centered(self, surface, y):
        self.screen.blit(surface, (self.width // 2 - surface.get_width() // 2, y))

    def draw_button(self, name, rect, label, color, mouse_pos):
        """Draw a button with a hover effect and remember it for click handling."""
        if not rect.collidepoint(mouse_pos):
            color = tuple(min(255, c + 80) for c in color)
        pygame.draw.rect(self.screen, color, rect, 0, 10)
        pygame.draw.rect(self.screen, WHITE, rect, 2, 10)
        text = self.render_text(FONT_MEDIUM, label, WHITE)
        self.screen.blit(text, (rect.centerx - text.get_width() // 2, rect.centery - text.get_height() // 2))
        self.buttons[name] = rect

    def symbol_at(self, index):
        game_round = self.engine.round if self.engine else None
        if game_round is None or index >= len(game_round.cards):
            return "?"
        return game_round.cards[index].symbol

    def draw_card_face(self, index, rect, state):
        if state is CardState.FACE_DOWN:
            pygame.draw.rect(self.screen, CARD_BACK_COLOR, rect, 0, 5)
            pygame.draw.rect(self.screen, BLUE, rect, 2, 5)
            # Card back design (simple pattern)
            if rect.width > self.card_width * 0.3:
                for i in range(3):
                    for j in range(4):
                        x = rect.left + rect.width * (i + 1) / 4
                        y = rect.top + rect.height * (j + 1) / 5
                        pygame.draw.circle(self.screen, WHITE, (x, y), 3)
            return

        matched = state is CardState.MATCHED
        pygame.draw.rect(self.screen, CARD_MATCHED_COLOR if matched else CARD_FRONT_COLOR, rect, 0, 5)
        pygame.draw.rect(self.screen, GREEN if matched else BLUE, rect, 2, 5)
        # Only show the symbol if the card is wide enough to be readable
        if rect.width > self.card_width * 0.3:
            text = self.render_text(FONT_CARD, self.symbol_at(index), BLACK)
            self.screen.blit(text, (rect.centerx - text.get_width() // 2,
                                    rect.centery - text.get_height() // 2))

    def draw_card(self, index):
        """Draw a card, squeezing it horizontally while it flips."""
        rect = self.get_card_rect(index)
        state = self.card_states[index]

        animation = self.flipping_cards.get(index)
        if animation is None:
            self.draw_card_face(index, rect, state)
            return

        start_ticks, is_flipping_up = animation
        progress = (pygame.time.get_ticks() - start_ticks) / FLIP_DURATION
        if progress >= 1:
            del self.flipping_cards[index]
            self.draw_card_face(index, rect, state)
            return

        if not is_flipping_up:
            progress = 1 - progress
        # Simulate 3D by changing width
        adjusted_width = abs(self.card_width * (0.5 - progress) * 2)
        adjusted_rect = pygame.Rect(rect.centerx - adjusted_width / 2, rect.y, adjusted_width, rect.height)
        showing_front = progress >= 0.5
        self.draw_card_face(index, adjusted_rect, CardState.FACE_UP if showing_front else CardState.FACE_DOWN)

    def draw_start_screen(self, mouse_pos):
        title = self.render_text(FONT_LARGE, "MEMORY CARD GAME", BLUE)
        self.blit_centered(title, 60)
        subtitle = self.render_text(FONT_SMALL, "Find matching pairs of cards. Select difficulty level:", BLACK)
        self.blit_centered(subtitle, 130)

        button_width, button_height, button_margin = 240, 60, 20
        y = 190
        for number, level in enumerate(sorted(LEVELS), start=1):
            rect = pygame.Rect(self.width // 2 - button_width // 2, y, button_width, button_height)
            self.draw_button(f"level{level}", rect, f"{number}. {LEVEL_NAMES[level]} ({level})", BLUE, mouse_pos)

            best = self.best_scores.get(level) or "--:--"
            best_text = self.render_text(FONT_SMALL, f"Best: {best}", BLACK)
            self.screen.blit(best_text, (rect.right + 20, rect.centery - best_text.get_height() // 2))
            y += button_height + button_margin

    def draw_game_screen(self, mouse_pos):
        # Draw stats background - create semi-transparent background
        stats_rect = pygame.Rect(10, 10, 220, 90)
        stats_bg = pygame.Surface((stats_rect.width, stats_rect.height), pygame.SRCALPHA)
        stats_bg.fill((0, 0, 0, 128))
        self.screen.blit(stats_bg, stats_rect)
        pygame.draw.rect(self.screen, BLUE, stats_rect, 2, 5)

        lines = [
            f"Time: {self.timer_text}",
            f"Moves: {self.moves}",
            f"Pairs: {self.matched}/{self.total_pairs}",
        ]
        for i, line in enumerate(lines):
            text = self.render_text(FONT_SMALL, line, WHITE)
            self.screen.blit(text, (stats_rect.x + 10, stats_rect.y + 10 + i * 25))

        self.draw_button("back", pygame.Rect(self.width - 170, 20, 150, 50), "Back", GREEN, mouse_pos)

        for index in range(len(self.card_states)):
            self.draw_card(index)

    def draw_clear_screen(self, mouse_pos):
        title = self.render_text(FONT_LARGE, "Congratulations!", BLUE)
        self.blit_centered(title, 100)

        if self.report is not None:
            lines = [
                f"Time: {self.report.elapsed_formatted}",
                f"Moves: {self.report.moves}",
                f"Accuracy: {self.report.accuracy}%",
            ]
            for i, line in enumerate(lines):
                self.blit_centered(self.render_text(FONT_MEDIUM, line, BLACK), 180 + i * 40)
            if self.report.is_new_record:
                self.blit_centered(self.render_text(FONT_MEDIUM, "New record!", RED), 310)

        self.draw_button("replay", pygame.Rect(self.width // 2 - 100, 370, 200, 50), "Play Again", BLUE, mouse_pos)
        self.draw_button("back", pygame.Rect(self.width // 2 - 100, 440, 200, 50), "Main Menu", GREEN, mouse_pos)

    def update_confetti(self):
        """Move the confetti and drop pieces that left the window."""
        for p in self.particles:
            p["x"] += p["vx"]
            p["y"] += p["vy"]
            p["vy"] += 0.1
        self.particles = [p for p in self.particles if p["y"] <= self.height]

    def draw_confetti(self):
        for p in self.particles:
            pygame.draw.rect(self.screen, p["color"], pygame.Rect(p["x"], p["y"], p["size"], p["size"]))

    def draw(self):
        """Draw the current screen."""
        mouse_pos = pygame.mouse.get_pos()
        self.buttons = {}
        self.screen.fill(WHITE)

        if self.screen_id == START_SCREEN:
            self.draw_start_screen(mouse_pos)
        elif self.screen_id == GAME_SCREEN:
            self.draw_game_screen(mouse_pos)
        elif self.screen_id == CLEAR_SCREEN:
            self.draw_clear_screen(mouse_pos)

        self.update_confetti()
        self.draw_confetti()
        pygame.display.flip()

    # Input

    def handle_click(self, pos):
        """Route a left click to the engine."""
        for name, rect in self.buttons.items():
            if not rect.collidepoint(pos):
                continue
            if name.startswith("level"):
                self.engine.start_round(int(name[len("level"):]))
            elif name == "replay":
                self.engine.restart()
            elif name == "back":
                self.engine.back_to_start()
            return

        if self.screen_id == GAME_SCREEN:
            index = self.get_card_at_pos(pos)
            if index is not None:
                self.engine.flip(self.engine.round, index)

    def handle_key(self, key):
        if self.screen_id == START_SCREEN:
            shortcuts = {pygame.K_1: 8, pygame.K_2: 12, pygame.K_3: 16}
            if key in shortcuts:
                self.engine.start_round(shortcuts[key])
            elif key == pygame.K_ESCAPE:
                return False
        elif key == pygame.K_ESCAPE:
            self.engine.back_to_start()
        return True

    def run(self):
        """Run the main loop until the window is closed."""
        running = True
        while running:
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                    self.handle_click(event.pos)
                elif event.type == pygame.KEYDOWN:
                    running = self.handle_key(event.key)

            # Timer ticks and mismatch reversions
            self.engine.scheduler.run_pending()

            self.draw()
            self.clock.tick(FPS)

        self.engine.abandon()


def main():
    """Main function to run the game."""
    pygame.init()
    gui = GameGUI()
    gui.setup_window()

    db = get_game_database(mode=SETTINGS["storage"], server_url=SETTINGS["server_url"],
                           db_file=SETTINGS["db_file"])
    gui.engine = RoundEngine(
        display=gui,
        store=db,
        scheduler=Scheduler(),
        reveal_delay=SETTINGS["reveal_delay"]
    )
    gui.engine.show_start()
    gui.run()

    pygame.quit()
    sys.exit()


if __name__ == "__main__":
    main()
