import pytest


def start(client, level=8, client_id="player1"):
    response = client.post('/api/games', json={"level": level, "client_id": client_id})
    assert response.status_code == 201
    return response.get_json()


def deck_of(flask_app, game_id):
    return flask_app.extensions['memory_games'][game_id].engine.round.deck


def pairs_of(deck):
    positions = {}
    for index, symbol in enumerate(deck):
        positions.setdefault(symbol, []).append(index)
    return list(positions.values())


def flip(client, game_id, index):
    response = client.post(f'/api/games/{game_id}/flip', json={"index": index})
    assert response.status_code == 200
    return response.get_json()


def event_types(events):
    return [event["type"] for event in events]


def test_index_page(client):
    response = client.get('/')
    assert response.status_code == 200
    assert b"Memory Game Server" in response.data


def test_start_game_hides_symbols(client):
    data = start(client, 12)
    assert data["level"] == 12
    assert data["card_count"] == 12
    assert data["best_scores"] == {"8": None, "12": None, "16": None}
    assert event_types(data["events"]) == [
        "render_board", "update_move_count", "update_matched_count",
        "update_timer", "switch_screen",
    ]
    assert data["events"][-1]["screen"] == "game"
    assert all("symbol" not in event for event in data["events"])


@pytest.mark.parametrize('body', [{"level": 10}, {"level": "8"}, {}])
def test_start_game_rejects_bad_level(client, body):
    response = client.post('/api/games', json=body)
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_flip_reveals_symbol(client, flask_app):
    game_id = start(client)["game_id"]
    deck = deck_of(flask_app, game_id)

    data = flip(client, game_id, 2)
    assert data["outcome"] == "awaiting"
    assert not data["finished"]
    assert data["events"] == [
        {"type": "set_card_state", "index": 2, "state": "face_up", "symbol": deck[2]}
    ]


def test_bad_flip_is_rejected(client):
    game_id = start(client)["game_id"]
    assert flip(client, game_id, 99)["outcome"] == "rejected"
    assert flip(client, game_id, None)["outcome"] == "rejected"


def test_mismatch_reverts_after_delay(client, flask_app, clock):
    game_id = start(client)["game_id"]
    deck = deck_of(flask_app, game_id)
    other = next(i for i, symbol in enumerate(deck) if symbol != deck[0])

    flip(client, game_id, 0)
    assert flip(client, game_id, other)["outcome"] == "pending"

    response = client.get(f'/api/games/{game_id}/events')
    assert response.get_json()["events"] == []

    clock.advance(1.0)
    events = client.get(f'/api/games/{game_id}/events').get_json()["events"]
    hidden = [e for e in events if e["type"] == "set_card_state"]
    assert hidden == [
        {"type": "set_card_state", "index": 0, "state": "face_down"},
        {"type": "set_card_state", "index": other, "state": "face_down"},
    ]
    assert {"type": "update_timer", "time": "00:01"} in events


def test_completed_game_stores_best_time(client, flask_app, clock):
    game_id = start(client, client_id="player2")["game_id"]
    clock.advance(42)

    data = None
    for a, b in pairs_of(deck_of(flask_app, game_id)):
        flip(client, game_id, a)
        data = flip(client, game_id, b)

    assert data["finished"]
    completion = [e for e in data["events"] if e["type"] == "show_completion"]
    assert completion[0]["report"]["elapsed_formatted"] == "00:42"
    assert completion[0]["report"]["accuracy"] == 100
    assert completion[0]["report"]["is_new_record"]
    assert data["events"][-1] == {"type": "switch_screen", "screen": "clear"}

    response = client.get('/api/best/player2')
    assert response.get_json()["best_scores"] == {"best8": "00:42"}
    assert client.get('/api/best/player2/best8').get_json()["value"] == "00:42"


def test_put_and_get_best_time(client):
    response = client.put('/api/best/c1/best12', json={"value": "01:30"})
    assert response.status_code == 200
    assert response.get_json()["success"]

    response = client.get('/api/best/c1/best12')
    assert response.get_json() == {"key": "best12", "value": "01:30"}
    assert client.get('/api/best/c2/best12').status_code == 404


@pytest.mark.parametrize('key, value', [
    ("best12", "soon"),
    ("best12", None),
    ("best12", "01:75"),
    ("best10", "01:00"),
    ("scores", "01:00"),
])
def test_put_rejects_invalid_values(client, key, value):
    response = client.put(f'/api/best/c1/{key}', json={"value": value})
    assert response.status_code == 400
    assert client.get(f'/api/best/c1/{key}').status_code == 404


def test_restart_starts_fresh_round(client, flask_app):
    game_id = start(client, 16)["game_id"]
    flip(client, game_id, 0)
    old_round = flask_app.extensions['memory_games'][game_id].engine.round

    response = client.post(f'/api/games/{game_id}/restart')
    data = response.get_json()
    assert data["level"] == 16
    assert data["events"][0] == {"type": "render_board", "level": 16, "card_count": 16}
    assert old_round.abandoned


def test_delete_game(client):
    game_id = start(client)["game_id"]
    response = client.delete(f'/api/games/{game_id}')
    data = response.get_json()
    assert data["success"]
    assert data["events"][-1] == {"type": "switch_screen", "screen": "start"}

    assert client.delete(f'/api/games/{game_id}').status_code == 404
    assert client.post(f'/api/games/{game_id}/flip', json={"index": 0}).status_code == 404
    assert client.get(f'/api/games/{game_id}/events').status_code == 404


def test_unknown_game(client):
    assert client.post('/api/games/nope/restart').status_code == 404


def finish(client, flask_app, game_id):
    data = None
    for a, b in pairs_of(deck_of(flask_app, game_id)):
        flip(client, game_id, a)
        data = flip(client, game_id, b)
    return data


def test_finished_games_are_forgotten(client, flask_app):
    games = flask_app.extensions['memory_games']
    for _ in range(5):
        game_id = start(client)["game_id"]
        data = finish(client, flask_app, game_id)
        assert data["finished"]
        assert any(e["type"] == "show_completion" for e in data["events"])
    assert len(games) == 0
    assert client.get(f'/api/games/{game_id}/events').status_code == 404


def test_idle_games_are_evicted(client, flask_app, clock):
    games = flask_app.extensions['memory_games']
    idle_id = start(client)["game_id"]
    idle_round = games[idle_id].engine.round

    clock.advance(flask_app.config['SESSION_TIMEOUT'] + 1)
    active_id = start(client)["game_id"]

    assert list(games) == [active_id]
    assert idle_round.abandoned
    assert client.get(f'/api/games/{idle_id}/events').status_code == 404


def test_polled_games_stay_alive(client, flask_app, clock):
    timeout = flask_app.config['SESSION_TIMEOUT']
    game_id = start(client)["game_id"]

    clock.advance(timeout - 1)
    assert client.get(f'/api/games/{game_id}/events').status_code == 200
    clock.advance(timeout - 1)
    start(client)

    assert game_id in flask_app.extensions['memory_games']
