from types import SimpleNamespace

import pytest

from glossa.configuration import SettingsStore, settings_from_config
from glossa.structures import Settings


def _config(**overrides):
    values = {
        "GLOSSA_NATIVE_LANGUAGE": "Spanish",
        "GLOSSA_TARGET_LANGUAGE": "French",
        "GLOSSA_CEFR_LEVEL": "A2",
        "GLOSSA_SIMPLIFY": False,
        "GLOSSA_AUTO_TRANSLATE": True,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_settings_come_from_configuration() -> None:
    assert settings_from_config(_config()) == Settings(
        native_language="Spanish",
        target_language="French",
        cefr_level="A2",
        simplify=False,
        auto_translate=True,
    )


def test_broken_configuration_falls_back_to_defaults(settings_store) -> None:
    assert settings_store.read() == Settings()


def test_unreadable_configuration_falls_back_to_defaults() -> None:
    def broken():
        raise OSError("permission denied")

    assert SettingsStore(loader=broken).read() == Settings()


def test_write_overrides_configuration() -> None:
    store = SettingsStore(loader=_config)

    settings = store.write(cefr_level=" c1 ", target_language="Italian")

    assert settings.cefr_level == "C1"
    assert settings.target_language == "Italian"
    assert settings.native_language == "Spanish"
    assert store.read() == settings


def test_empty_language_resets_to_default() -> None:
    store = SettingsStore(loader=_config)

    assert store.write(native_language="   ").native_language == "English"


def test_write_rejects_bad_values(settings_store) -> None:
    with pytest.raises(ValueError, match="CEFR level"):
        settings_store.write(cefr_level="D1")
    with pytest.raises(ValueError, match="Unknown setting"):
        settings_store.write(font_size=12)
    assert settings_store.read() == Settings()
