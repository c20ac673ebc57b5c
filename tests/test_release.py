import pytest

from scripts import init_db, release


@pytest.fixture()
def calls(monkeypatch):
    seen: list[tuple[str, str]] = []
    monkeypatch.setattr(release, "migrate", lambda url, sql=False: seen.append(("migrate", url)))
    monkeypatch.setattr(init_db, "seed_only", lambda *, database_url=None: seen.append(("seed", database_url)))
    return seen


def test_release_migrates_then_seeds(monkeypatch, calls, tmp_path):
    url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("ENV", "development")
    release.run_release()
    assert calls == [("migrate", url), ("seed", url)]


def test_release_without_seed(monkeypatch, calls):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///practice.db")
    monkeypatch.setenv("ENV", "test")
    release.run_release(seed=False)
    assert [name for name, _ in calls] == ["migrate"]


def test_production_release_refuses_sqlite(monkeypatch, calls):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        release.run_release()
    assert calls == []
