"""
Unit tests for the field stores and script variable helpers
"""
import subprocess
from unittest.mock import Mock, patch

import pytest

from src.agent.field_store import FieldStore, JsonFieldStore, NinjaCliFieldStore, store_from_env
from src.utils.config import env_int, env_str
from src.utils.exceptions import ConfigurationError, FieldStoreError


class TestNinjaCliFieldStore:

    @pytest.fixture
    def store(self):
        return NinjaCliFieldStore(cli_path="/opt/ninjarmm-cli")

    def test_read(self, store):
        with patch('src.agent.field_store.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="2|Friday|23:00\n", stderr="")

            values = store.read(['rebootSchedule'])

        assert values == {'rebootSchedule': '2|Friday|23:00'}
        assert mock_run.call_args.args[0] == ['/opt/ninjarmm-cli', 'get', 'rebootSchedule']

    def test_write_renders_booleans(self, store):
        with patch('src.agent.field_store.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

            store.write({'sessionActive': False})

        assert mock_run.call_args.args[0] == ['/opt/ninjarmm-cli', 'set', 'sessionActive', 'false']

    def test_failed_call(self, store):
        with patch('src.agent.field_store.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=1, stdout="", stderr="field not found")

            with pytest.raises(FieldStoreError, match="field not found"):
                store.read(['missing'])

    def test_timeout(self, store):
        with patch('src.agent.field_store.subprocess.run', side_effect=subprocess.TimeoutExpired('cli', 30)):
            with pytest.raises(FieldStoreError, match="timed out"):
                store.set_tag('Remote Session Active')

    def test_cli_missing(self, store):
        with patch('src.agent.field_store.subprocess.run', side_effect=FileNotFoundError("nope")):
            with pytest.raises(FieldStoreError, match="not available"):
                store.remove_tag('Remote Session Active')

    def test_large_value_goes_through_stdin(self, store):
        table = "<table>" + "x" * 190000 + "</table>"
        with patch('src.agent.field_store.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

            store.write({'sessionHistory': table})

        assert mock_run.call_args.args[0] == ['/opt/ninjarmm-cli', 'set', '--stdin', 'sessionHistory']
        assert mock_run.call_args.kwargs['input'] == table

    def test_small_value_stays_on_command_line(self, store):
        with patch('src.agent.field_store.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="", stderr="")

            store.write({'sessionEnd': '2025-10-13 10:20'})

        assert mock_run.call_args.args[0][-1] == '2025-10-13 10:20'
        assert mock_run.call_args.kwargs['input'] is None


class TestFieldStoreInterface:

    def test_incomplete_backend_cannot_be_created(self):
        class ReadOnlyStore(FieldStore):
            def read(self, names):
                return {}

        with pytest.raises(TypeError):
            ReadOnlyStore()

    def test_base_cannot_be_created(self):
        with pytest.raises(TypeError):
            FieldStore()


class TestJsonFieldStore:

    def test_missing_file_reads_empty(self, tmp_path):
        store = JsonFieldStore(tmp_path / "state.json")

        assert store.read(['sessionHistory']) == {'sessionHistory': ''}

    def test_write_then_read(self, tmp_path):
        store = JsonFieldStore(tmp_path / "nested" / "state.json")
        store.write({'sessionStart': '2025-10-13 09:15'})
        store.write({'sessionActive': True})

        assert store.read(['sessionStart', 'sessionActive']) == {
            'sessionStart': '2025-10-13 09:15',
            'sessionActive': True,
        }

    def test_tags(self, tmp_path):
        store = JsonFieldStore(tmp_path / "state.json")
        store.set_tag('A')
        store.set_tag('A')
        store.set_tag('B')
        store.remove_tag('A')

        assert store.tags() == ['B']

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")

        with pytest.raises(FieldStoreError):
            JsonFieldStore(path).read(['x'])


def test_store_from_env(tmp_path):
    assert isinstance(store_from_env({'RMM_STATE_FILE': str(tmp_path / 's.json')}), JsonFieldStore)
    assert isinstance(store_from_env({}), NinjaCliFieldStore)


class TestEnvHelpers:

    def test_env_str(self):
        assert env_str('A', 'x', {'A': '  value '}) == 'value'
        assert env_str('A', 'x', {'A': '   '}) == 'x'
        assert env_str('A', 'x', {}) == 'x'

    def test_env_int(self):
        assert env_int('N', 30, {'N': '45'}) == 45
        assert env_int('N', 30, {}) == 30
        with pytest.raises(ConfigurationError):
            env_int('N', 30, {'N': '4.5'})


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
