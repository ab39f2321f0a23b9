"""Unit tests for reader models and option parsing."""

import pytest

from core.exceptions import ConfigurationError
from core.models import BinlogConfig, CheckpointState, Position


class TestPosition:
    def test_roundtrip_keeps_optional_fields(self):
        position = Position("mysql-bin.000001", 120, 1700000000000, "uuid:1-5", 7)

        data = position.to_dict()

        assert data == {
            "journalName": "mysql-bin.000001",
            "position": 120,
            "timestamp": 1700000000000,
            "gtid": "uuid:1-5",
            "serverId": 7,
        }
        assert Position.from_dict(data) == position

    def test_negative_offset(self):
        with pytest.raises(ValueError):
            Position("mysql-bin.000001", -1)

    def test_non_integer_offset(self):
        with pytest.raises(ConfigurationError):
            Position.from_dict({"journalName": "mysql-bin.000001", "position": "abc"})

    def test_empty_checkpoint_state(self):
        assert CheckpointState.from_dict(None) == CheckpointState()
        assert CheckpointState.from_dict({"position": None}).position is None
        assert CheckpointState().to_dict() == {"position": None}


class TestBinlogConfig:
    def test_from_dict(self):
        config = BinlogConfig.from_dict(
            {
                "host": "db.internal",
                "port": "3307",
                "username": "reader",
                "password": "s3cret",
                "jdbcUrl": "jdbc:mysql://db.internal:3307/shop",
                "table": ["orders", "crm.contacts"],
                "cat": "insert, update",
                "start": {"journalName": "mysql-bin.000001", "position": 4},
                "slaveId": 1234,
                "gtidMode": "true",
                "connectionCharset": "UTF-8",
                "bufferSize": 1024,
                "detectingEnable": False,
                "pavingData": True,
            }
        )

        assert config.port == 3307
        assert config.tables == ("orders", "crm.contacts")
        assert config.categories == ["INSERT", "UPDATE"]
        assert config.slave_id == 1234
        assert config.gtid_mode is True
        assert config.mysql_charset == "utf8mb4"
        assert config.buffer_size == 1024
        assert config.detecting_enable is False
        assert config.paving_data is True

    def test_defaults(self):
        config = BinlogConfig.from_dict({"host": "db", "username": "reader"})

        assert config.port == 3306
        assert config.tables == ()
        assert config.categories == []
        assert config.start == {}
        assert config.buffer_size == 256
        assert config.detecting_sql == "SELECT 1"
        assert config.slave_id > 0

    def test_comma_separated_tables(self):
        config = BinlogConfig.from_dict({"host": "db", "username": "u", "table": "a, b"})
        assert config.tables == ("a", "b")

    @pytest.mark.parametrize("missing", ["host", "username"])
    def test_required_options(self, missing):
        options = {"host": "db", "username": "reader"}
        del options[missing]

        with pytest.raises(ConfigurationError, match=missing):
            BinlogConfig.from_dict(options)

    @pytest.mark.parametrize(
        "options",
        [
            {"bufferSize": 0},
            {"port": "not-a-port"},
            {"gtidMode": "maybe"},
            {"start": "mysql-bin.000001"},
        ],
    )
    def test_invalid_options(self, options):
        with pytest.raises(ConfigurationError):
            BinlogConfig.from_dict({"host": "db", "username": "reader", **options})

    def test_repr_hides_password(self):
        config = BinlogConfig(host="db", username="reader", password="s3cret")
        assert "s3cret" not in repr(config)
