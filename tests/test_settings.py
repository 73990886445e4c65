"""
Unit tests for display settings.
"""

import pytest
from numscript import FormatSettings, Scalar


class TestFormatSettings:
    """Defaults, validation and YAML files."""

    def test_defaults(self):
        settings = FormatSettings()
        assert settings.mode == "short"
        assert settings.precision == 10
        assert settings.epsilon == 1e-12

    def test_long_precision(self):
        assert FormatSettings(mode="long").precision == 15

    def test_with_mode(self):
        settings = FormatSettings(short_precision=4).with_mode("long")
        assert settings.mode == "long"
        assert settings.short_precision == 4

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            FormatSettings(mode="wide")

    @pytest.mark.parametrize("precision", [0, 18, 2.5, True])
    def test_invalid_precision(self, precision):
        with pytest.raises(ValueError):
            FormatSettings(short_precision=precision)

    def test_custom_precision_display(self):
        assert Scalar(1 / 3).display(FormatSettings(short_precision=4)) == "0.3333"

    def test_load(self, tmp_path):
        path = tmp_path / "format.yaml"
        path.write_text("mode: long\nlong_precision: 12\n", encoding="utf-8")
        settings = FormatSettings.load(path)
        assert settings.mode == "long"
        assert settings.precision == 12

    def test_load_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert FormatSettings.load(path) == FormatSettings()

    def test_load_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("mode: long\ncolour: blue\n", encoding="utf-8")
        with pytest.raises(ValueError, match="colour"):
            FormatSettings.load(path)

    def test_load_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- long\n", encoding="utf-8")
        with pytest.raises(ValueError):
            FormatSettings.load(path)

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "saved.yaml"
        original = FormatSettings(mode="long", short_precision=6, long_precision=16)
        original.save(path)
        assert FormatSettings.load(path) == original
