"""Unit tests for artifact, record and unit declaration parsers."""

import json
from pathlib import Path

import pytest

from deploy_orchestrator.exceptions import ConfigurationError, InvalidDeploymentRecord, InvalidUnitName
from deploy_orchestrator.hashing import bytecode_hash, constructor_args_hash
from deploy_orchestrator.parsers import (
    parse_artifact,
    parse_deployment_record,
    parse_unit_declarations,
    read_build_info_version,
    record_from_dict,
    record_to_dict,
)
from deploy_orchestrator.types import DeploymentRecord, UnitAddress

SAMPLE_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
SAMPLE_TX = "0x" + "ab" * 32


class TestParseArtifact:
    """Test the parse_artifact function."""

    def test_parses_truffle_artifact(self, tmp_path: Path):
        """Test parsing a truffle artifact with an inline compiler version."""
        artifact_file = tmp_path / "Token.json"
        artifact_file.write_text(
            json.dumps(
                {
                    "contractName": "Token",
                    "abi": [{"type": "constructor", "inputs": []}],
                    "bytecode": "0x6080",
                    "compiler": {"name": "solc", "version": "0.8.7+commit.e28d00a7"},
                    "sourcePath": "contracts/Token.sol",
                }
            )
        )

        artifact = parse_artifact(artifact_file)

        assert artifact.contract_name == "Token"
        assert artifact.bytecode == "0x6080"
        assert artifact.compiler_version == "0.8.7+commit.e28d00a7"
        assert artifact.source_path == "contracts/Token.sol"

    def test_parses_hardhat_artifact(self, tmp_path: Path):
        """Test parsing a hardhat artifact with solcVersion."""
        artifact_file = tmp_path / "Registry.json"
        artifact_file.write_text(
            json.dumps(
                {"contractName": "Registry", "abi": [], "bytecode": "0x6080", "solcVersion": "0.6.12"}
            )
        )

        artifact = parse_artifact(artifact_file)

        assert artifact.compiler_version == "0.6.12"
        assert artifact.source_path is None

    def test_hardhat_version_from_build_info(self, tmp_path: Path):
        """Test that a hardhat artifact without solcVersion reads its build-info."""
        folder = tmp_path / "contracts" / "Registry.sol"
        folder.mkdir(parents=True)
        (folder / "Registry.json").write_text(
            json.dumps(
                {
                    "_format": "hh-sol-artifact-1",
                    "contractName": "Registry",
                    "sourceName": "contracts/Registry.sol",
                    "abi": [],
                    "bytecode": "0x6080",
                }
            )
        )
        (folder / "Registry.dbg.json").write_text(json.dumps({"buildInfo": "../../build-info/f00.json"}))
        (tmp_path / "build-info").mkdir()
        (tmp_path / "build-info" / "f00.json").write_text(
            json.dumps({"solcVersion": "0.6.12", "solcLongVersion": "0.6.12+commit.27d51765"})
        )
        cache = {}

        artifact = parse_artifact(folder / "Registry.json", cache)

        assert artifact.compiler_version == "0.6.12+commit.27d51765"
        assert artifact.source_path == "contracts/Registry.sol"
        assert list(cache.values()) == ["0.6.12+commit.27d51765"]

    def test_hardhat_without_build_info(self, tmp_path: Path):
        """Test that a missing .dbg.json leaves the version unknown."""
        artifact_file = tmp_path / "Registry.json"
        artifact_file.write_text(json.dumps({"contractName": "Registry", "abi": [], "bytecode": "0x6080"}))

        assert read_build_info_version(artifact_file) == ""
        assert parse_artifact(artifact_file).compiler_version == ""

    def test_adds_bytecode_prefix(self, tmp_path: Path):
        """Test that bytecode without 0x gets the prefix."""
        artifact_file = tmp_path / "Token.json"
        artifact_file.write_text(json.dumps({"contractName": "Token", "abi": [], "bytecode": "6080"}))

        assert parse_artifact(artifact_file).bytecode == "0x6080"

    @pytest.mark.parametrize("missing", ["contractName", "abi", "bytecode"])
    def test_missing_required_field_raises(self, tmp_path: Path, missing: str):
        """Test that artifacts without required fields are rejected."""
        data = {"contractName": "Token", "abi": [], "bytecode": "0x6080"}
        del data[missing]
        artifact_file = tmp_path / "Token.json"
        artifact_file.write_text(json.dumps(data))

        with pytest.raises(ConfigurationError, match=missing):
            parse_artifact(artifact_file)

    def test_constructor_inputs(self, token_artifact):
        """Test that constructor inputs are read from the ABI."""
        inputs = token_artifact.constructor_inputs()
        assert [i["type"] for i in inputs] == ["string", "string", "bool"]


class TestDeploymentRecordParsing:
    """Test record_from_dict, record_to_dict and parse_deployment_record."""

    def test_record_survives_serialization(self):
        """Test that every field written is read back."""
        record = DeploymentRecord(
            unit_name="TokenA",
            address=SAMPLE_ADDRESS,
            constructor_args_hash="0x01",
            bytecode_hash="0x02",
            tx_hash=SAMPLE_TX,
            contract="Token",
            args=["Token", "TKN", False],
            block_number=1234,
            num_deployments=2,
        )

        assert record_from_dict(record_to_dict(record)) == record

    def test_block_number_inside_receipt(self):
        """Test that the block number is written inside the receipt."""
        data = record_to_dict(
            DeploymentRecord("TokenA", SAMPLE_ADDRESS, "0x01", "0x02", SAMPLE_TX, block_number=7)
        )
        assert data["receipt"] == {"blockNumber": 7}
        assert "blockNumber" not in data

    def test_top_level_block_number(self):
        """Test that a top-level blockNumber is accepted."""
        record = record_from_dict(
            {
                "unitName": "TokenA",
                "address": SAMPLE_ADDRESS,
                "constructorArgsHash": "0x01",
                "bytecodeHash": "0x02",
                "transactionHash": SAMPLE_TX,
                "blockNumber": 99,
            }
        )
        assert record.block_number == 99
        assert record.num_deployments == 1

    def test_optional_fields_omitted(self):
        """Test that unset optional fields are not written."""
        data = record_to_dict(DeploymentRecord("TokenA", SAMPLE_ADDRESS, "0x01", "0x02", SAMPLE_TX))
        assert "contractName" not in data
        assert "args" not in data
        assert "receipt" not in data

    def test_missing_fields_raise(self):
        """Test that a record without its hashes is rejected."""
        with pytest.raises(InvalidDeploymentRecord, match="constructorArgsHash, bytecodeHash"):
            record_from_dict(
                {"unitName": "TokenA", "address": SAMPLE_ADDRESS, "transactionHash": SAMPLE_TX}
            )

    def test_hardhat_deploy_record(self, tmp_path: Path):
        """Test that a record written by hardhat-deploy is named after its file and hashed."""
        record_file = tmp_path / "TokenA.json"
        record_file.write_text(
            json.dumps(
                {
                    "address": SAMPLE_ADDRESS,
                    "abi": [],
                    "transactionHash": SAMPLE_TX,
                    "receipt": {"blockNumber": 12, "status": 1},
                    "args": ["Token", "TKN", False],
                    "numDeployments": 2,
                    "bytecode": "0x6080604052",
                    "deployedBytecode": "0x6080",
                }
            )
        )

        record = parse_deployment_record(record_file)

        assert record.unit_name == "TokenA"
        assert record.constructor_args_hash == constructor_args_hash(["Token", "TKN", False])
        assert record.bytecode_hash == bytecode_hash("0x6080604052")
        assert record.block_number == 12
        assert record.num_deployments == 2

    def test_record_must_be_object(self):
        """Test that a JSON list is not a record."""
        with pytest.raises(InvalidDeploymentRecord, match="not a JSON object"):
            record_from_dict(["TokenA"])

    def test_parse_deployment_record_file(self, tmp_path: Path):
        """Test reading a record from disk."""
        record_file = tmp_path / "TokenA.json"
        record_file.write_text(
            json.dumps(
                {
                    "unitName": "TokenA",
                    "address": SAMPLE_ADDRESS,
                    "constructorArgsHash": "0x01",
                    "bytecodeHash": "0x02",
                    "transactionHash": SAMPLE_TX,
                    "receipt": {"blockNumber": 5},
                }
            )
        )

        record = parse_deployment_record(record_file)
        assert record.unit_name == "TokenA"
        assert record.block_number == 5


class TestParseUnitDeclarations:
    """Test the parse_unit_declarations function."""

    def test_parses_units_in_order(self):
        """Test that units keep declaration order and defaults."""
        units = parse_unit_declarations(
            {
                "units": [
                    {"name": "TokenA", "contract": "Token", "tags": ["TokenA"], "args": ["Token", "TKN", False]},
                    {"name": "Registry", "depends_on": ["TokenA"]},
                ]
            }
        )

        assert [u.name for u in units] == ["TokenA", "Registry"]
        assert units[0].contract_name == "Token"
        assert units[0].constructor_args == ("Token", "TKN", False)
        assert units[0].from_role == "deployer"
        assert units[1].contract_name == "Registry"
        assert units[1].depends_on == frozenset({"TokenA"})

    def test_unit_reference_becomes_unit_address(self):
        """Test that {"$unit": name} is parsed as a UnitAddress, also inside lists."""
        (unit,) = parse_unit_declarations(
            {"units": [{"name": "Registry", "args": [{"$unit": "TokenA"}, [{"$unit": "TokenB"}, 1]]}]}
        )

        assert unit.constructor_args == (UnitAddress("TokenA"), (UnitAddress("TokenB"), 1))
        assert unit.referenced_units() == ["TokenA", "TokenB"]

    def test_plain_mapping_arg_is_kept(self):
        """Test that mappings with other keys are passed through."""
        (unit,) = parse_unit_declarations({"units": [{"name": "A", "args": [{"$unit": "B", "x": 1}]}]})
        assert unit.constructor_args == ({"$unit": "B", "x": 1},)

    def test_duplicate_names_raise(self):
        """Test that a unit name may only be declared once."""
        with pytest.raises(ConfigurationError, match="declared twice"):
            parse_unit_declarations({"units": [{"name": "A"}, {"name": "A"}]})

    def test_missing_name_raises(self):
        """Test that every unit needs a name."""
        with pytest.raises(ConfigurationError):
            parse_unit_declarations({"units": [{"tags": ["A"]}]})

    def test_empty_declarations(self):
        """Test that no units parse to an empty list."""
        assert parse_unit_declarations({}) == []

    @pytest.mark.parametrize("name", ["tokens/TokenA", "..", "../TokenA", "Token..A", "a\\b", ".hidden"])
    def test_unit_names_must_be_file_names(self, name):
        """Test that names that would escape or hide in the records directory are rejected."""
        with pytest.raises(InvalidUnitName):
            parse_unit_declarations({"units": [{"name": name}]})

    def test_invalid_name_is_configuration_error(self):
        """Test that a bad unit name is reported as configuration, naming the unit."""
        with pytest.raises(ConfigurationError) as exc_info:
            parse_unit_declarations({"units": [{"name": "tokens/TokenA"}]})
        assert exc_info.value.unit == "tokens/TokenA"
