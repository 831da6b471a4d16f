import pytest
from pydantic import ValidationError

from rosetta_gateway.pipeline import NormalizerFactory
from rosetta_gateway.settings import Settings


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ROSETTA_WINDOW_SIZE", "512")
    monkeypatch.setenv("ROSETTA_TARGET_DIALECT", "gemini")

    settings = Settings()

    assert settings.window_size == 512
    assert settings.target_dialect == "gemini"


def test_sentinels_are_lowercased():
    assert Settings(sentinel_values=[" Unknown ", "N/A"]).sentinel_values == ["unknown", "n/a"]


def test_recovery_attempts_bounded():
    with pytest.raises(ValidationError):
        Settings(max_recovery_attempts=3)


def test_factory_uses_patterns_file(tmp_path):
    path = tmp_path / "patterns.json"
    path.write_text('{"patterns": [{"name": "call", "regex": "CALL\\\\s+(?P<tool>\\\\w+)\\\\(", "confidence": 0.9}]}')

    factory = NormalizerFactory(Settings(patterns_file=str(path)))

    assert [p.name for p in factory.library.patterns] == ["call"]
    assert factory.vocabulary.name == "anthropic"
