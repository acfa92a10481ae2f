"""
Tests for the regex-level Solidity helpers.
"""

from analysis import solidity


class TestExtractMetadata:
    def test_declarations(self, registry_source):
        meta = solidity.extract_metadata(registry_source)

        assert meta.pragmas == ["pragma solidity 0.8.20;"]
        assert len(meta.imports) == 2
        assert meta.contracts == ["SafeRegistry"]
        assert meta.interfaces == []
        assert meta.libraries == []

    def test_interfaces_and_libraries(self):
        src = "interface IVault { }\nlibrary MathLib { }\ncontract Pool { }"
        meta = solidity.extract_metadata(src)

        assert meta.interfaces == ["IVault"]
        assert meta.libraries == ["MathLib"]
        assert meta.contracts == ["Pool"]

    def test_malformed_source(self):
        meta = solidity.extract_metadata("this is not solidity {{{")
        assert meta.contracts == []
        assert meta.pragmas == []


class TestExtractFunctions:
    def test_visibility_and_mutability(self, vault_source):
        functions = {f.name: f for f in solidity.extract_functions(vault_source)}

        assert list(functions) == ["deposit", "withdraw", "withdrawAll", "setOwner"]
        assert functions["deposit"].visibility == "external"
        assert functions["deposit"].mutability == "payable"
        assert functions["withdraw"].mutability == "nonpayable"
        assert functions["deposit"].line_number == 8

    def test_defaults(self):
        fn = solidity.extract_functions("function helper(uint x) { }")[0]
        assert fn.visibility == "internal"
        assert fn.mutability == "nonpayable"
        assert fn.is_state_changing

    def test_modifiers(self, registry_source):
        functions = {f.name: f for f in solidity.extract_functions(registry_source)}

        assert functions["setEntry"].modifiers == ["onlyRole", "nonReentrant"]
        assert functions["getEntry"].mutability == "view"
        assert not functions["getEntry"].is_state_changing


class TestExtractFunctionBody:
    def test_nested_braces(self):
        src = "function f() public { if (x) { y = 1; } z = 2; }\nfunction g() public { }"
        body = solidity.extract_function_body(src, "f")

        assert "y = 1;" in body
        assert "z = 2;" in body
        assert "function g" not in body

    def test_unknown_function(self):
        assert solidity.extract_function_body("function f() public { }", "g") is None

    def test_declaration_without_body(self):
        assert solidity.extract_function_body("function f() external;", "f") is None

    def test_unbalanced_braces(self):
        body = solidity.extract_function_body("function f() public { if (x) { y = 1;", "f")
        assert "y = 1;" in body

    def test_prefix_names_not_confused(self, vault_source):
        body = solidity.extract_function_body(vault_source, "withdraw")
        assert "call{value: amount}" in body
        assert "tx.origin" not in body


class TestCompilerHelpers:
    def test_versions(self):
        assert solidity.compiler_versions(["pragma solidity ^0.8.0;"]) == ["^0.8.0"]

    def test_floating(self):
        assert solidity.has_floating_pragma(["^0.8.0"])
        assert solidity.has_floating_pragma([">=0.6.0 <0.9.0"])
        assert solidity.has_floating_pragma(["~0.7.0"])
        assert not solidity.has_floating_pragma(["0.8.20"])

    def test_outdated(self):
        assert solidity.has_outdated_compiler(["^0.7.6"])
        assert solidity.has_outdated_compiler(["0.4.24"])
        assert not solidity.has_outdated_compiler(["0.8.20"])
        assert not solidity.has_outdated_compiler([])

    def test_safe_math(self):
        assert solidity.has_safe_math("using SafeMath for uint;", ["0.6.12"])
        assert solidity.has_safe_math("", ["0.8.1"])
        assert not solidity.has_safe_math("", ["0.7.6"])


class TestDetection:
    def test_import_paths(self):
        imports = ['import "@openzeppelin/contracts/access/Ownable.sol";', "import {A} from './A.sol';"]
        assert solidity.import_paths(imports) == ["@openzeppelin/contracts/access/Ownable.sol", "./A.sol"]

    def test_protocols(self):
        src = "IUniswapV2Pair pair; (r0, r1, ) = pair.getReserves(); feed.latestRoundData();"
        assert solidity.detect_protocols(src) == ["Uniswap", "Chainlink"]

    def test_protection_signatures(self, registry_source, vault_source):
        assert solidity.has_reentrancy_guard(registry_source)
        assert solidity.has_access_control(registry_source)
        assert not solidity.has_reentrancy_guard(vault_source)
        assert not solidity.has_access_control(vault_source)

    def test_privileged_functions(self, vault_source, registry_source):
        vault = solidity.privileged_functions_without_access_control(
            vault_source, solidity.extract_functions(vault_source)
        )
        registry = solidity.privileged_functions_without_access_control(
            registry_source, solidity.extract_functions(registry_source)
        )

        assert [f.name for f in vault] == ["withdraw", "withdrawAll", "setOwner"]
        assert registry == []

    def test_privileged_function_with_modifier(self):
        src = "function withdraw() external onlyOwner { payable(owner).transfer(1); }"
        functions = solidity.extract_functions(src)
        assert solidity.privileged_functions_without_access_control(src, functions) == []
