"""Unit tests for resolving `@ff(...)` options."""

import ast
import logging

import pytest

from flexifunc.codegen.config import VariantConfig, config_from_decorator, options_from_decorator, resolve_config
from flexifunc.exceptions import InvalidConfigValue, UnknownConfigKey


def decorator(source: str) -> ast.expr:
    return ast.parse(source, mode="eval").body


class TestResolveConfig:
    def test_defaults(self):
        assert resolve_config() == VariantConfig(variant_name=None, error_type="Exception")
        assert resolve_config({}) == resolve_config(None)

    def test_recognized_options(self):
        config = resolve_config({"variant_name": "custom_async", "error_type": " errors.AppError "})

        assert config.variant_name == "custom_async"
        assert config.error_type == "errors.AppError"

    @pytest.mark.parametrize("error_type", ["ValueError", "errors.AppError", "ValueError | KeyError", "Problem[str]"])
    def test_error_type_expressions(self, error_type):
        assert resolve_config({"error_type": error_type}).error_type == error_type

    def test_unknown_key_strict(self):
        with pytest.raises(UnknownConfigKey, match="retries"):
            resolve_config({"retries": 3}, strict=True)

    def test_unknown_key_lenient(self, caplog):
        with caplog.at_level(logging.WARNING, logger="flexifunc"):
            config = resolve_config({"retries": 3, "variant_name": "go"}, strict=False)

        assert config == VariantConfig(variant_name="go")
        assert "Ignoring unknown option 'retries'" in caplog.text

    def test_strictness_from_environment(self, monkeypatch):
        monkeypatch.setenv("FLEXIFUNC_STRICT", "0")
        assert resolve_config({"retries": 3}) == VariantConfig()

        monkeypatch.setenv("FLEXIFUNC_STRICT", "1")
        with pytest.raises(UnknownConfigKey):
            resolve_config({"retries": 3})

    @pytest.mark.parametrize(
        "options",
        [
            {"variant_name": 3},
            {"variant_name": "not valid"},
            {"variant_name": "class"},
            {"variant_name": ""},
            {"error_type": ValueError},
            {"error_type": "1 + 2"},
            {"error_type": "'ValueError'"},
            {"error_type": "None"},
            {"error_type": "ValueError("},
        ],
    )
    def test_invalid_values(self, options):
        with pytest.raises(InvalidConfigValue):
            resolve_config(options)

    def test_invalid_value_is_rejected_in_lenient_mode_too(self):
        with pytest.raises(InvalidConfigValue):
            resolve_config({"variant_name": 3}, strict=False)


class TestOptionsFromDecorator:
    def test_bare_marker(self):
        assert options_from_decorator(decorator("ff")) == {}
        assert options_from_decorator(decorator("ff()")) == {}

    def test_keyword_literals(self):
        options = options_from_decorator(decorator("ff(variant_name='go', error_type='AppError')"))
        assert options == {"variant_name": "go", "error_type": "AppError"}

    @pytest.mark.parametrize(
        "source",
        [
            "ff('go')",
            "ff(**options)",
            "ff(variant_name=name)",
            "ff(error_type=AppError)",
        ],
    )
    def test_rejected_forms(self, source):
        with pytest.raises(InvalidConfigValue):
            options_from_decorator(decorator(source))

    def test_config_from_decorator_reports_line(self):
        node = ast.parse("x = 1\n\n@ff(retries=3)\ndef f():\n    pass\n").body[1].decorator_list[0]

        with pytest.raises(UnknownConfigKey) as exc_info:
            config_from_decorator(node, strict=True)
        assert exc_info.value.lineno == 3

    def test_config_from_decorator(self):
        config = config_from_decorator(decorator("flexifunc.ff(error_type='AppError')"), strict=True)
        assert config == VariantConfig(error_type="AppError")
