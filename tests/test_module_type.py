"""Tests for module-format classification."""

import pytest

from depdoctor.analyzers.module_type import classify, classify_raw, is_dual_exports
from depdoctor.models.manifest import Manifest


class TestClassify:
    """Tests for classify priority rules."""

    def test_dual_exports_win_over_type(self) -> None:
        """Exports with require and import conditions should be dual."""
        manifest = Manifest(
            type="module",
            exports={".": {"import": "./index.mjs", "require": "./index.cjs"}},
        )

        assert classify(manifest) == "dual"

    def test_type_module_is_esm(self) -> None:
        """type=module should be esm regardless of main."""
        assert classify(Manifest(type="module", main="index.js")) == "esm"

    def test_no_type_no_main_is_cjs(self) -> None:
        """A bare manifest defaults to CommonJS."""
        assert classify(Manifest(name="plain")) == "cjs"

    @pytest.mark.parametrize("main", ["index.js", "lib/index.cjs", "lib/main"])
    def test_cjs_entries(self, main: str) -> None:
        """.js, .cjs and extensionless entries without type should be cjs."""
        assert classify(Manifest(main=main)) == "cjs"

    def test_commonjs_type(self) -> None:
        """type=commonjs should be cjs."""
        assert classify(Manifest(type="commonjs", main="index.js")) == "cjs"

    def test_mjs_main_is_esm(self) -> None:
        """A .mjs entry without type should be esm."""
        assert classify(Manifest(main="dist/index.mjs")) == "esm"

    def test_mjs_export_target_is_esm(self) -> None:
        """The default export target should be used when main is absent."""
        assert classify(Manifest(exports={".": {"default": "./index.mjs"}})) == "esm"

    def test_unrecognized_is_unknown(self) -> None:
        """An unusual type with a non-JS entry should be unknown."""
        assert classify(Manifest(type="weird", main="index.wasm")) == "unknown"


class TestIsDualExports:
    """Tests for is_dual_exports."""

    def test_nested_conditions(self) -> None:
        """Conditions nested under subpaths should be collected."""
        exports = {
            "./feature": {"node": {"import": "./f.mjs", "require": "./f.cjs"}},
        }

        assert is_dual_exports(exports)

    def test_module_condition_counts_as_esm(self) -> None:
        """The bundler 'module' condition pairs with require."""
        assert is_dual_exports({"module": "./esm.js", "require": "./cjs.js"})

    def test_single_format_is_not_dual(self) -> None:
        """Only import conditions should not be dual."""
        assert not is_dual_exports({".": {"import": "./index.mjs"}})

    def test_string_exports(self) -> None:
        """A plain string export has no conditions."""
        assert not is_dual_exports("./index.js")


class TestClassifyRaw:
    """Tests for classify_raw."""

    def test_non_mapping_is_unknown(self) -> None:
        """Non-dict input should be unknown."""
        assert classify_raw(["not", "a", "manifest"]) == "unknown"

    def test_mapping(self) -> None:
        """A raw dict should be classified like a Manifest."""
        assert classify_raw({"name": "x", "type": "module"}) == "esm"
