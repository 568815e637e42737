import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from db.base import Base
from db.models.settings import Settings
from db.repositories.settings_repository import SettingsRepository


@pytest.fixture
def session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    sess = Session()
    yield sess
    sess.close()


@pytest.fixture
def settings_repo(session):
    return SettingsRepository(session)


def test_default_when_unset(settings_repo, monkeypatch):
    monkeypatch.delenv("SUBSCRIPTION_CURRENCY", raising=False)
    assert settings_repo.get_setting("SUBSCRIPTION_CURRENCY", "INR") == "INR"


def test_database_value(settings_repo, monkeypatch):
    monkeypatch.delenv("SUBSCRIPTION_CURRENCY", raising=False)
    settings_repo.set_setting("SUBSCRIPTION_CURRENCY", "USD")
    assert settings_repo.get_setting("SUBSCRIPTION_CURRENCY", "INR") == "USD"


def test_environment_wins_over_database(settings_repo, monkeypatch):
    settings_repo.set_setting("SUBSCRIPTION_CURRENCY", "USD")
    monkeypatch.setenv("SUBSCRIPTION_CURRENCY", "EUR")
    assert settings_repo.get_setting("SUBSCRIPTION_CURRENCY") == "EUR"


def test_set_setting_updates_in_place(settings_repo, session, monkeypatch):
    monkeypatch.delenv("RAZORPAY_KEY_SECRET", raising=False)
    settings_repo.set_setting("RAZORPAY_KEY_SECRET", "one", is_secret=True)
    settings_repo.set_setting("RAZORPAY_KEY_SECRET", "two", is_secret=True)
    assert session.query(Settings).filter_by(key="RAZORPAY_KEY_SECRET").count() == 1
    assert settings_repo.get_setting("RAZORPAY_KEY_SECRET") == "two"


@pytest.mark.parametrize("raw,expected", [("499", 499.0), ("499.50", 499.5), ("abc", 299.0), ("", 299.0)])
def test_get_float(settings_repo, monkeypatch, raw, expected):
    monkeypatch.setenv("SUBSCRIPTION_PRICE", raw)
    assert settings_repo.get_float("SUBSCRIPTION_PRICE", 299.0) == expected
