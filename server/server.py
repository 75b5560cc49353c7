"""
Memory Game Server

A Flask server that runs memory game rounds for the browser and stores
best completion times for the Memory Card Game clients.
"""
import os
import sys
import sqlite3
import threading
import time
import uuid
from contextlib import closing
from flask import Blueprint, Flask, current_app, jsonify, request

# Add parent directory to path to allow importing shared modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from classes import LEVELS, CardState, Display, LevelError, RoundEngine, parse_time, score_key
from scheduler import Scheduler

DB_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "server/server_stats.db")
BROWSER_CLIENT_ID = "browser"

api = Blueprint('api', __name__)


def init_db(db_path):
    """Initialize the database if it doesn't exist."""
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir)

    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS best_scores (
            client_id TEXT NOT NULL,
            key TEXT NOT NULL,
            value TEXT NOT NULL,
            sync_time REAL NOT NULL,
            PRIMARY KEY (client_id, key)
        )
    ''')

    conn.commit()
    conn.close()
    print(f"Database initialized at {db_path}")


class ServerStore:
    """Best-time store over the server's best_scores table, scoped to one client."""

    def __init__(self, db_path, client_id):
        self.db_path = db_path
        self.client_id = client_id

    def get(self, key):
        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                cursor = conn.cursor()
                cursor.execute('SELECT value FROM best_scores WHERE client_id = ? AND key = ?',
                               (self.client_id, key))
                row = cursor.fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            print(f"Error reading {key} for {self.client_id}: {e}")
            return None

    def set(self, key, value):
        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT INTO best_scores (client_id, key, value, sync_time)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(client_id, key) DO UPDATE SET
                        value = excluded.value,
                        sync_time = excluded.sync_time
                ''', (self.client_id, key, value, time.time()))
                conn.commit()
            return True
        except sqlite3.Error as e:
            print(f"Error saving {key} for {self.client_id}: {e}")
            return False

    def items(self):
        with closing(sqlite3.connect(self.db_path)) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute('SELECT key, value FROM best_scores WHERE client_id = ? ORDER BY key',
                           (self.client_id,))
            return {row['key']: row['value'] for row in cursor.fetchall()}


class EventQueueDisplay(Display):
    """
    Display that queues every notification as a JSON-ready dict.
    The browser fetches and applies them in order.
    """

    def __init__(self):
        self.events = []
        self.engine = None

    def _push(self, event_type, **data):
        event = {"type": event_type}
        event.update(data)
        self.events.append(event)

    def drain(self):
        """Return queued events and start a new queue."""
        events, self.events = self.events, []
        return events

    def render_board(self, level, card_count):
        self._push("render_board", level=level, card_count=card_count)

    def set_card_state(self, index, state):
        event = {"index": index, "state": state.value}
        # The browser only learns a symbol once the card is showing
        if state is not CardState.FACE_DOWN and self.engine and self.engine.round:
            event["symbol"] = self.engine.round.cards[index].symbol
        self._push("set_card_state", **event)

    def update_move_count(self, moves):
        self._push("update_move_count", moves=moves)

    def update_matched_count(self, matched, total):
        self._push("update_matched_count", matched=matched, total=total)

    def update_timer(self, formatted):
        self._push("update_timer", time=formatted)

    def show_completion(self, report):
        self._push("show_completion", report=report.to_dict())

    def play_celebration(self):
        self._push("play_celebration")

    def switch_screen(self, screen_id):
        self._push("switch_screen", screen=screen_id)

    def update_best_scores(self, table):
        self._push("update_best_scores", best_scores=format_table(table))


class GameSession:
    """One browser game: an engine with its own display queue and scheduler."""

    def __init__(self, game_id, client_id, engine, display):
        self.game_id = game_id
        self.client_id = client_id
        self.engine = engine
        self.display = display
        self.lock = threading.Lock()
        self.last_active = engine.scheduler.now()

    def touch(self):
        self.last_active = self.engine.scheduler.now()

    def idle_for(self, now):
        return now - self.last_active

    def pump(self):
        """Run timers that fell due since the last request."""
        self.engine.scheduler.run_pending()

    @property
    def finished(self):
        game_round = self.engine.round
        return game_round is not None and game_round.completed


def format_table(table):
    """Best-score table with JSON-friendly keys."""
    return {str(level): value for level, value in table.items()}


def _games():
    return current_app.extensions['memory_games']


def _get_session(game_id):
    with current_app.extensions['memory_games_lock']:
        session = _games().get(game_id)
        if session is not None:
            session.touch()
        return session


def _forget_session(game_id):
    with current_app.extensions['memory_games_lock']:
        return _games().pop(game_id, None)


def evict_idle_sessions():
    """
    Drop games nobody has touched for SESSION_TIMEOUT seconds.

    Returns:
        Number of games dropped
    """
    now = current_app.config['CLOCK']()
    timeout = current_app.config['SESSION_TIMEOUT']
    with current_app.extensions['memory_games_lock']:
        stale = [game_id for game_id, session in _games().items() if session.idle_for(now) > timeout]
        for game_id in stale:
            _games().pop(game_id).engine.abandon()
    if stale:
        print(f"Evicted {len(stale)} idle game(s)")
    return len(stale)


def _error(message, status):
    return jsonify({"error": message}), status


@api.route('/')
def index():
    """Serve a simple dashboard page."""
    levels = "".join(f"<li>{level} cards - {label}</li>" for level, label in LEVELS.items())
    return f"""
    <html>
        <head>
            <title>Memory Game Server</title>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 40px; }}
                h1 {{ color: #2c3e50; }}
                .stats {{ margin: 20px 0; }}
                .footer {{ margin-top: 30px; color: #7f8c8d; font-size: 12px; }}
            </style>
        </head>
        <body>
            <h1>Memory Game Server</h1>
            <p>This server runs memory game rounds for the browser and keeps best times.</p>

            <div class="stats">
                <h2>Levels:</h2>
                <ul>{levels}</ul>
                <h2>API Endpoints:</h2>
                <ul>
                    <li>/api/games - POST: Start a game</li>
                    <li>/api/games/:id/flip - POST: Flip a card</li>
                    <li>/api/games/:id/events - GET: Fetch pending display events</li>
                    <li>/api/games/:id/restart - POST: Replay the same level</li>
                    <li>/api/games/:id - DELETE: Abandon a game</li>
                    <li>/api/best/:client_id - GET: All best times for a client</li>
                    <li>/api/best/:client_id/:key - GET/PUT: One best time</li>
                </ul>
            </div>

            <div class="footer">
                Memory Game Server - Running on Flask
            </div>
        </body>
    </html>
    """


@api.route('/api/games', methods=['POST'])
def start_game():
    """Start a new round for a browser client."""
    data = request.get_json(silent=True) or {}
    level = data.get('level')
    client_id = str(data.get('client_id') or BROWSER_CLIENT_ID)
    evict_idle_sessions()

    display = EventQueueDisplay()
    engine = RoundEngine(
        display=display,
        store=ServerStore(current_app.config['DB_PATH'], client_id),
        scheduler=Scheduler(clock=current_app.config['CLOCK']),
        reveal_delay=current_app.config['REVEAL_DELAY']
    )
    display.engine = engine

    try:
        engine.start_round(level)
    except LevelError as e:
        print(f"Rejected game request: {e}")
        return _error(str(e), 400)

    game_id = uuid.uuid4().hex
    session = GameSession(game_id, client_id, engine, display)
    with current_app.extensions['memory_games_lock']:
        _games()[game_id] = session

    print(f"Started game {game_id} at level {level} for client {client_id}")
    return jsonify({
        "game_id": game_id,
        "level": level,
        "card_count": len(engine.round.cards),
        "best_scores": format_table(engine.scores.table()),
        "events": display.drain()
    }), 201


@api.route('/api/games/<game_id>/flip', methods=['POST'])
def flip_card(game_id):
    """Flip one card of a running game."""
    session = _get_session(game_id)
    if session is None:
        return _error(f"Unknown game: {game_id}", 404)

    data = request.get_json(silent=True) or {}
    index = data.get('index')

    with session.lock:
        session.pump()
        outcome = session.engine.flip(session.engine.round, index)
        finished = session.finished
        events = session.display.drain()

    if finished:
        # Nothing left to play; the report went out with these events
        _forget_session(game_id)
        print(f"Finished game {game_id}")
    return jsonify({
        "outcome": outcome.value,
        "finished": finished,
        "events": events
    })


@api.route('/api/games/<game_id>/events', methods=['GET'])
def get_events(game_id):
    """Return display events produced since the last request."""
    session = _get_session(game_id)
    if session is None:
        return _error(f"Unknown game: {game_id}", 404)

    with session.lock:
        session.pump()
        return jsonify({
            "finished": session.finished,
            "events": session.display.drain()
        })


@api.route('/api/games/<game_id>/restart', methods=['POST'])
def restart_game(game_id):
    """Replay the same level."""
    session = _get_session(game_id)
    if session is None:
        return _error(f"Unknown game: {game_id}", 404)

    with session.lock:
        session.engine.restart()
        return jsonify({
            "game_id": game_id,
            "level": session.engine.round.level,
            "finished": session.finished,
            "events": session.display.drain()
        })


@api.route('/api/games/<game_id>', methods=['DELETE'])
def abandon_game(game_id):
    """Abandon a game and forget it."""
    session = _forget_session(game_id)
    if session is None:
        return _error(f"Unknown game: {game_id}", 404)

    with session.lock:
        session.engine.back_to_start()
        print(f"Abandoned game {game_id}")
        return jsonify({"success": True, "events": session.display.drain()})


@api.route('/api/best/<client_id>', methods=['GET'])
def get_best_scores(client_id):
    """Get every best time stored for a client."""
    try:
        store = ServerStore(current_app.config['DB_PATH'], client_id)
        return jsonify({"client_id": client_id, "best_scores": store.items()})
    except sqlite3.Error as e:
        return _error(str(e), 500)


@api.route('/api/best/<client_id>/<key>', methods=['GET'])
def get_best_score(client_id, key):
    """Get one best time."""
    store = ServerStore(current_app.config['DB_PATH'], client_id)
    value = store.get(key)
    if value is None:
        return _error(f"No value for {key}", 404)
    return jsonify({"key": key, "value": value})


@api.route('/api/best/<client_id>/<key>', methods=['PUT'])
def put_best_score(client_id, key):
    """Save one best time from a client."""
    data = request.get_json(silent=True) or {}
    value = data.get('value')
    print(f"Received save request from {client_id}: {key}={value}")

    if key not in {score_key(level) for level in LEVELS}:
        return _error(f"Unknown key: {key}", 400)
    try:
        parse_time(value)
    except ValueError as e:
        return _error(str(e), 400)

    if not ServerStore(current_app.config['DB_PATH'], client_id).set(key, value):
        return _error(f"Could not save {key}", 500)

    print(f"Successfully saved {key} for client {client_id}")
    return jsonify({"success": True, "key": key, "value": value})


def create_app(config=None):
    """
    Build the Flask application.

    Args:
        config: Optional mapping overriding DB_PATH, REVEAL_DELAY, CLOCK,
                SESSION_TIMEOUT or TESTING
    """
    app = Flask(__name__)
    app.config.update(
        DB_PATH=DB_PATH,
        REVEAL_DELAY=1.0,
        CLOCK=time.monotonic,
        SESSION_TIMEOUT=30 * 60
    )
    if config:
        app.config.update(config)

    init_db(app.config['DB_PATH'])
    app.extensions['memory_games'] = {}
    app.extensions['memory_games_lock'] = threading.Lock()
    app.register_blueprint(api)
    return app


if __name__ == '__main__':
    app = create_app()

    # Get port from environment or use default
    port = int(os.environ.get('PORT', 5000))

    print(f"Server running on http://localhost:{port}")
    app.run(host='0.0.0.0', port=port, debug=True)
