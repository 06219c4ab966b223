import pytest

from storage.config import AppConfig, load_config, save_config, update_config


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "config.json")
    assert config == AppConfig()


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "nested" / "config.json"
    save_config(AppConfig(api_base_url="https://api.example", last_group_id="g7"), path)

    assert load_config(path).last_group_id == "g7"
    assert not path.with_suffix(".tmp").exists()


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")

    assert load_config(path) == AppConfig()


def test_update_config_changes_known_options_only(tmp_path):
    path = tmp_path / "config.json"
    update_config(path, organization_id="org-9")

    assert load_config(path).organization_id == "org-9"
    with pytest.raises(AttributeError):
        update_config(path, theme="dark")
