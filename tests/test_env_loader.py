import os

from frontier.utils.env_loader import load_environment


def test_load_environment_from_custom_file(monkeypatch, tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("FRONTIER_CRAWL_ID=nightly\nFRONTIER_BATCH_SIZE=250\n")

    # registered with monkeypatch so teardown removes what the file sets
    monkeypatch.setenv("FRONTIER_CRAWL_ID", "placeholder")
    monkeypatch.setenv("FRONTIER_BATCH_SIZE", "placeholder")

    loaded = load_environment(env_file, override=True)

    assert loaded is True
    assert os.getenv("FRONTIER_CRAWL_ID") == "nightly"
    assert os.getenv("FRONTIER_BATCH_SIZE") == "250"


def test_load_environment_does_not_override_by_default(monkeypatch, tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("FRONTIER_CRAWL_ID=from-file\n")
    monkeypatch.setenv("FRONTIER_CRAWL_ID", "from-shell")

    load_environment(env_file)

    assert os.getenv("FRONTIER_CRAWL_ID") == "from-shell"


def test_load_environment_missing_file(tmp_path):
    missing_file = tmp_path / "missing.env"

    loaded = load_environment(missing_file)

    assert loaded is False


def test_env_file_variable_selects_the_file(monkeypatch, tmp_path):
    env_file = tmp_path / "frontier.env"
    env_file.write_text("FRONTIER_TENANT=acme\n")
    monkeypatch.setenv("FRONTIER_ENV_FILE", str(env_file))
    monkeypatch.setenv("FRONTIER_TENANT", "placeholder")

    assert load_environment(override=True) is True
    assert os.getenv("FRONTIER_TENANT") == "acme"
