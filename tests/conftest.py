import pytest

from typetrainer import create_app
from typetrainer.gateway import LoadedText, PersistenceGateway
from typetrainer.models import db


# ---------------------------------------------------------------------------
# Flask
# ---------------------------------------------------------------------------

@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test-secret",
        "JWT_SECRET": "test-secret",
        "MIN_TARGET_WIDTH": 5,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def signup(client, email="ann@example.com", password="secret123", name="Ann"):
    r = client.post("/api/signup", json={"email": email, "password": password, "name": name})
    assert r.status_code == 201, r.get_json()
    body = r.get_json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]


@pytest.fixture
def auth(client):
    headers, _user = signup(client)
    return headers


@pytest.fixture
def make_text(client):
    def _make(headers, content="The quick brown fox", title="Fox"):
        r = client.post("/api/texts", json={"title": title, "content": content}, headers=headers)
        assert r.status_code == 201, r.get_json()
        return r.get_json()["id"]
    return _make


# ---------------------------------------------------------------------------
# Engine doubles
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeGateway(PersistenceGateway):
    """Records calls; answers are configurable per operation."""

    def __init__(self, content="The quick brown fox", progress_index=0, coins=0):
        self.loaded = LoadedText(content=content, progress_index=progress_index, coins=coins)
        self.calls = []
        self.answers = {}

    def _answer(self, name, default=True):
        value = self.answers.get(name, default)
        if isinstance(value, Exception):
            raise value
        return value

    def calls_to(self, name):
        return [args for op, args in self.calls if op == name]

    def load_text(self, text_id, user_id):
        self.calls.append(("load_text", (text_id, user_id)))
        self._answer("load_text", None)
        return self.loaded

    def save_progress(self, user_id, text_id, flat_index):
        self.calls.append(("save_progress", (user_id, text_id, flat_index)))
        return self._answer("save_progress")

    def record_line_completion(self, user_id, line_time_seconds, line_accuracy):
        self.calls.append(("record_line_completion", (user_id, line_time_seconds, line_accuracy)))
        return self._answer("record_line_completion")

    def increment_reward(self, user_id, amount):
        self.calls.append(("increment_reward", (user_id, amount)))
        return self._answer("increment_reward")

    def decrement_reward(self, user_id, amount):
        self.calls.append(("decrement_reward", (user_id, amount)))
        return self._answer("decrement_reward")

    def record_text_completion(self, user_id, text_id):
        self.calls.append(("record_text_completion", (user_id, text_id)))
        return self._answer("record_text_completion")


class ManualDispatcher:
    """Holds submitted calls until drain(), like a background pool that has not finished yet."""

    def __init__(self):
        self.queue = []

    def submit(self, fn, *args, on_done=None):
        self.queue.append((fn, args, on_done))

    def drain(self):
        ran = 0
        while self.queue:
            fn, args, on_done = self.queue.pop(0)
            try:
                result, error = fn(*args), None
            except Exception as e:
                result, error = None, e
            if on_done is not None:
                on_done(result, error)
            ran += 1
        return ran

    @property
    def in_flight(self):
        return len(self.queue)

    def shutdown(self, wait=True):
        if wait:
            self.drain()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def manual_dispatcher():
    return ManualDispatcher()
