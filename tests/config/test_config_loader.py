"""
Engine configuration: YAML loading, validation and wiring into the operations.
"""

from dataclasses import replace

import pytest
import yaml

from inventory_config import DEFAULT_CONFIG_PATH, EngineConfig, get_active_config
from inventory_config.loader import compute_checksum, parse_engine_config
from inventory_config.schema import LocationsConfig
from inventory_kernel.domain.dtos import FulfillmentItem
from inventory_kernel.exceptions import ConfigurationError
from inventory_services import build_operations


def _write(tmp_path, data) -> str:
    path = tmp_path / "inventory.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaults:
    def test_bundled_defaults(self):
        config = get_active_config()

        assert isinstance(config, EngineConfig)
        assert config.database.pool_size == 20
        assert config.locations.default_location is None
        assert config.allocation.tie_break == "location_id"
        assert config.fulfillment.number_prefix == "FUL"
        assert len(config.checksum) == 64

    def test_empty_document_uses_schema_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = get_active_config(path)

        assert config.database == EngineConfig().database
        assert config.logging.level == "INFO"

    def test_load_is_logged_with_checksum(self, captured_logs):
        config = get_active_config(DEFAULT_CONFIG_PATH)

        loaded = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert loaded[-1]["checksum"] == config.checksum
        assert loaded[-1]["config_path"] == str(DEFAULT_CONFIG_PATH)


class TestOverrides:
    def test_partial_override(self, tmp_path):
        path = _write(
            tmp_path,
            {"locations": {"default_location": "RETURNS"}, "fulfillment": {"number_prefix": "SHP"}},
        )

        config = get_active_config(path)

        assert config.locations.default_location == "RETURNS"
        assert config.fulfillment.number_prefix == "SHP"
        assert config.database.url == "sqlite:///inventory.db"

    def test_checksum_tracks_content(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestValidation:
    @pytest.mark.parametrize(
        "data, field",
        [
            ({"inventory": {}}, "inventory"),
            ({"database": {"uri": "sqlite://"}}, "database.uri"),
            ({"database": {"pool_size": "20"}}, "database.pool_size"),
            ({"database": {"pool_size": 0}}, "database.pool_size"),
            ({"database": {"max_overflow": -1}}, "database.max_overflow"),
            ({"database": {"echo": "yes"}}, "database.echo"),
            ({"database": {"url": ""}}, "database.url"),
            ({"allocation": {"tie_break": "random"}}, "allocation.tie_break"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
            ({"fulfillment": {"number_prefix": ""}}, "fulfillment.number_prefix"),
            ({"locations": ["RETURNS"]}, "locations"),
        ],
    )
    def test_rejected(self, data, field):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_engine_config(data)
        assert exc_info.value.field == field

    def test_bool_is_not_an_integer(self):
        with pytest.raises(ConfigurationError):
            parse_engine_config({"database": {"pool_size": True}})

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("database: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            get_active_config(path)


class TestWiring:
    def test_number_prefix_reaches_fulfillments(
        self, session, deterministic_clock, product, stocked_bin_x, make_order
    ):
        config = get_active_config()
        config = replace(config, fulfillment=replace(config.fulfillment, number_prefix="SHP"))
        ops = build_operations(session, config=config, clock=deterministic_clock)
        order = make_order([(product.id, 2)])

        result = ops.create_fulfillment(order.id, [FulfillmentItem(order.lines[0].id, 2)])

        assert result.fulfillment_number.startswith("SHP-")

    def test_default_location_name_is_passed_to_loader(self, session, make_location):
        returns = make_location(name="RETURNS")
        config = replace(get_active_config(), locations=LocationsConfig("RETURNS"))

        ops = build_operations(session, config=config)

        assert ops.loader.default_location().id == returns.id
