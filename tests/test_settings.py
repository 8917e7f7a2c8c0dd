import pytest

from copyright_registry import config
from copyright_registry.core.settings import (
    AUDIO_SIMILARITY_THRESHOLD, COPYRIGHT_PAYMENT_AMOUNT, DEFAULT_SETTINGS, LYRICS_SIMILARITY_THRESHOLD,
    MAX_FILE_SIZE, SettingNotFoundError, SettingValueError, SettingsStore, parse_setting_value
)


def test_seed_defaults_inserts_every_default(store):
    store.settings.clear()

    SettingsStore(store).seed_defaults()

    assert set(store.settings) == {d.key for d in DEFAULT_SETTINGS}


def test_seed_defaults_is_idempotent_and_keeps_admin_values(store, settings_store):
    settings_store.update(LYRICS_SIMILARITY_THRESHOLD, 0.6)

    settings_store.seed_defaults()
    settings_store.seed_defaults()

    assert store.settings[LYRICS_SIMILARITY_THRESHOLD]["value"] == "0.6"


def test_seed_defaults_fills_empty_values(store, settings_store):
    store.settings[AUDIO_SIMILARITY_THRESHOLD]["value"] = ""

    settings_store.seed_defaults()

    assert store.settings[AUDIO_SIMILARITY_THRESHOLD]["value"] == str(config.DEFAULT_AUDIO_SIMILARITY_THRESHOLD)


def test_audio_threshold_default_has_single_source(settings_store):
    thresholds = settings_store.get_thresholds()

    assert thresholds.audio == config.DEFAULT_AUDIO_SIMILARITY_THRESHOLD
    assert thresholds.lyrics == config.DEFAULT_LYRICS_SIMILARITY_THRESHOLD


def test_get_thresholds_falls_back_when_missing(store, settings_store):
    del store.settings[AUDIO_SIMILARITY_THRESHOLD]

    assert settings_store.get_thresholds().audio == config.DEFAULT_AUDIO_SIMILARITY_THRESHOLD


@pytest.mark.parametrize("stored", ["abc", "1.7", "-0.2"])
def test_get_thresholds_falls_back_when_invalid(store, settings_store, stored):
    store.settings[LYRICS_SIMILARITY_THRESHOLD]["value"] = stored

    assert settings_store.get_thresholds().lyrics == config.DEFAULT_LYRICS_SIMILARITY_THRESHOLD


def test_update_threshold(settings_store):
    setting = settings_store.update(AUDIO_SIMILARITY_THRESHOLD, "0.9")

    assert setting.value == "0.9"
    assert settings_store.get_thresholds().audio == 0.9


@pytest.mark.parametrize("value", [1.5, -0.01, "high"])
def test_update_threshold_rejects_invalid_values(settings_store, value):
    with pytest.raises(SettingValueError):
        settings_store.update(AUDIO_SIMILARITY_THRESHOLD, value)


def test_update_unknown_setting(settings_store):
    with pytest.raises(SettingNotFoundError):
        settings_store.update("NOT_A_SETTING", "1")


def test_update_boolean_setting_normalizes_value(store, settings_store):
    settings_store.update("MAINTENANCE_MODE", True)

    assert store.settings["MAINTENANCE_MODE"]["value"] == "true"
    assert settings_store.get_value("MAINTENANCE_MODE") is True


def test_allowed_file_types_and_size(settings_store):
    settings_store.update("ALLOWED_FILE_TYPES", " .MP3, .wav ,")
    settings_store.update("MAX_FILE_SIZE", 2)

    assert settings_store.allowed_file_types() == [".mp3", ".wav"]
    assert settings_store.max_file_size_bytes() == 2 * 1024 * 1024


@pytest.mark.parametrize("value, setting_type, expected", [
    ("0.5", "number", 0.5),
    ("yes", "boolean", True),
    ("0", "boolean", False),
    ("text", "string", "text"),
])
def test_parse_setting_value(value, setting_type, expected):
    assert parse_setting_value(value, setting_type) == expected


def test_parse_setting_value_rejects_bad_boolean():
    with pytest.raises(SettingValueError):
        parse_setting_value("maybe", "boolean")


@pytest.mark.parametrize("value", ["nan", "inf", "-inf"])
def test_parse_setting_value_rejects_non_finite_numbers(value):
    with pytest.raises(SettingValueError):
        parse_setting_value(value, "number")


@pytest.mark.parametrize("key", [MAX_FILE_SIZE, COPYRIGHT_PAYMENT_AMOUNT])
@pytest.mark.parametrize("value", ["nan", "inf", -1])
def test_update_rejects_unusable_sizes_and_amounts(store, settings_store, key, value):
    before = store.settings[key]["value"]

    with pytest.raises(SettingValueError):
        settings_store.update(key, value)

    assert store.settings[key]["value"] == before


@pytest.mark.parametrize("stored", ["nan", "inf", "-5"])
def test_max_file_size_falls_back_when_stored_value_unusable(store, settings_store, stored):
    store.settings[MAX_FILE_SIZE]["value"] = stored

    assert settings_store.max_file_size_bytes() == config.MAX_FILE_SIZE_MB * 1024 * 1024


def test_update_accepts_zero_amount(settings_store):
    assert settings_store.update(COPYRIGHT_PAYMENT_AMOUNT, 0).value == "0"
