import pytest

from api import create_app
from calculator import REPLAY_INLINE, Calculator
from database import Database
from keypad import DIGITS


@pytest.fixture
def calc():
    # AUTO replays play synchronously with no delay
    return Calculator(replay_delay=0, replay_mode=REPLAY_INLINE)


@pytest.fixture
def press():
    """press(calc, "10 + 5 × 3 =") feeds space-separated keys and returns the last snapshot"""
    def _press(calculator, keys):
        snapshot = None
        for token in split_keys(keys):
            snapshot = calculator.process_input(token)
        return snapshot
    return _press


@pytest.fixture
def db(tmp_path):
    return Database(str(tmp_path / "shopcalc_test.db"))


@pytest.fixture
def app(tmp_path, calc):
    app = create_app(db_path=str(tmp_path / "shopcalc_api.db"), calculator=calc)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def split_keys(keys):
    """Expand "10 + 5" into the key presses "1", "0", "+", "5" """
    tokens = []
    for word in keys.split():
        if word.isdigit() and word not in DIGITS:
            tokens.extend(word)
        else:
            tokens.append(word)
    return tokens


@pytest.fixture
def keys():
    return split_keys
