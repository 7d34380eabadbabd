import json
import os
import sys
import tempfile
import types
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from promostandards._config import load_client_config, read_config_file
from promostandards._definition_cache import clear_definitions, get_or_create_definition
from promostandards._logging import redact_config
from promostandards.errors import ErrorKind, PromoStandardsError
from promostandards.wsdl import InterfaceDefinition, load_definition, read_definition

WSDL_URL = "https://supplier.test/product?wsdl"


def _binding_operation(element):
    return SimpleNamespace(input=SimpleNamespace(body=SimpleNamespace(qname=SimpleNamespace(localname=element))))


def _wsdl_document():
    binding = MagicMock()
    binding.all.return_value = {
        "getProduct": _binding_operation("GetProductRequest"),
        "getProductSellable": SimpleNamespace(input=None),
    }
    port = SimpleNamespace(binding=binding, binding_options={"address": "https://supplier.test/product/soap"})
    return SimpleNamespace(
        root_definitions=SimpleNamespace(target_namespace="http://www.promostandards.org/WSDL/ProductDataService/2.0.0/"),
        services={"ProductDataService": SimpleNamespace(ports={"ProductDataServicePort": port})},
    )


class ConfigTests(unittest.TestCase):
    def test_load_client_config_merges_layers(self):
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as tmp:
            json.dump({"id": "file-id", "timeout_seconds": 5, "version": "1.0.0"}, tmp)
            file_path = tmp.name

        try:
            with patch.dict(os.environ, {"PSCFG_PASSWORD": "env-pw", "PSCFG_VERSION": "2.0.0"}, clear=False):
                result = load_client_config(
                    config={"timeout_seconds": 10},
                    file_path=file_path,
                    env_prefix="PSCFG",
                    required=("id", "password"),
                    defaults={"cache_ttl_seconds": 300, "timeout_seconds": 30},
                    overrides={"version": "1.2.1", "id": None},
                )
        finally:
            os.unlink(file_path)

        self.assertEqual(result["id"], "file-id")
        self.assertEqual(result["password"], "env-pw")
        self.assertEqual(result["timeout_seconds"], 10)
        self.assertEqual(result["version"], "1.2.1")
        self.assertEqual(result["cache_ttl_seconds"], 300)

    def test_load_client_config_missing_required_raises(self):
        with self.assertRaises(PromoStandardsError) as ctx:
            load_client_config(required=("id", "password"), defaults={"id": "acct"})

        self.assertEqual(ctx.exception.kind, ErrorKind.CONFIGURATION)
        self.assertEqual(ctx.exception.details["missing"], ["password"])

    def test_read_config_file_yaml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "client.yml"
            path.write_text("id: yaml-id\nservices:\n  inventory:\n    version: 2.0.0\n", encoding="utf-8")

            result = read_config_file(path)

        self.assertEqual(result, {"id": "yaml-id", "services": {"inventory": {"version": "2.0.0"}}})

    def test_read_config_file_rejects_unknown_format(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "client.ini"
            path.write_text("[client]\nid = x\n", encoding="utf-8")

            with self.assertRaises(PromoStandardsError) as ctx:
                read_config_file(path)

        self.assertEqual(ctx.exception.kind, ErrorKind.CONFIGURATION)

    def test_read_config_file_rejects_non_mapping_root(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "client.json"
            path.write_text("[1, 2]", encoding="utf-8")

            with self.assertRaises(PromoStandardsError):
                read_config_file(path)

    def test_read_config_file_missing_path(self):
        with self.assertRaises(FileNotFoundError):
            read_config_file("/nonexistent/promostandards.json")

    def test_redact_config_masks_nested_secrets(self):
        redacted = redact_config(
            {"id": "acct", "password": "pw", "discovery": {"api_key": "k", "api_url": "https://x.test"}, "token": None}
        )

        self.assertEqual(redacted["password"], "***")
        self.assertEqual(redacted["discovery"], {"api_key": "***", "api_url": "https://x.test"})
        self.assertIsNone(redacted["token"])
        self.assertEqual(redacted["id"], "ac***")

    def test_redact_config_masks_accounts_inside_service_lists(self):
        redacted = redact_config(
            {"services": [{"username": "supplier-account", "wsVersion": "2.0.0", "password": "pw"}], "id": "ab"}
        )

        self.assertEqual(redacted["services"], [{"username": "su***", "wsVersion": "2.0.0", "password": "***"}])
        self.assertEqual(redacted["id"], "***")


class DefinitionCacheTests(unittest.TestCase):
    def setUp(self):
        clear_definitions()

    def tearDown(self):
        clear_definitions()

    def test_get_or_create_definition_reuses_when_enabled(self):
        call_count = {"n": 0}

        def factory():
            call_count["n"] += 1
            return InterfaceDefinition(target_namespace="urn:x")

        first = get_or_create_definition(WSDL_URL, factory)
        second = get_or_create_definition(f" {WSDL_URL} ", factory)

        self.assertIs(first, second)
        self.assertEqual(call_count["n"], 1)

    def test_get_or_create_definition_does_not_reuse_when_disabled(self):
        first = get_or_create_definition(WSDL_URL, InterfaceDefinition, reuse=False)
        second = get_or_create_definition(WSDL_URL, InterfaceDefinition, reuse=False)

        self.assertIsNot(first, second)

    def test_clear_definitions_forces_rebuild(self):
        factory = MagicMock(side_effect=lambda: InterfaceDefinition())

        get_or_create_definition(WSDL_URL, factory)
        clear_definitions()
        get_or_create_definition(WSDL_URL, factory)

        self.assertEqual(factory.call_count, 2)


class ReadDefinitionTests(unittest.TestCase):
    def test_read_definition_collects_namespace_operations_and_address(self):
        definition = read_definition(_wsdl_document())

        self.assertEqual(definition.target_namespace, "http://www.promostandards.org/WSDL/ProductDataService/2.0.0/")
        self.assertEqual(definition.address, "https://supplier.test/product/soap")
        self.assertEqual(definition.input_element("getProduct"), "GetProductRequest")
        self.assertIsNone(definition.input_element("getProductSellable"))
        self.assertEqual(definition.operation_names(), ["getProduct", "getProductSellable"])

    def test_read_definition_of_empty_document(self):
        definition = read_definition(SimpleNamespace())

        self.assertEqual(definition, InterfaceDefinition())


class LoadDefinitionTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        clear_definitions()

    def tearDown(self):
        clear_definitions()

    def _fake_zeep(self, client_ctor, transport_ctor):
        fake_zeep_module = types.ModuleType("zeep")
        fake_zeep_module.Client = client_ctor

        fake_zeep_transports_module = types.ModuleType("zeep.transports")
        fake_zeep_transports_module.Transport = transport_ctor

        return patch.dict(
            sys.modules,
            {
                "zeep": fake_zeep_module,
                "zeep.transports": fake_zeep_transports_module,
            },
        )

    async def test_load_definition_uses_zeep_with_session_transport(self):
        mock_client_ctor = MagicMock(return_value=SimpleNamespace(wsdl=_wsdl_document()))
        transport = MagicMock()
        mock_transport_ctor = MagicMock(return_value=transport)

        with self._fake_zeep(mock_client_ctor, mock_transport_ctor):
            with patch("requests.Session") as mock_session_ctor:
                session = MagicMock()
                mock_session_ctor.return_value = session

                first = await load_definition(WSDL_URL, 5.0)
                second = await load_definition(WSDL_URL, 5.0)

        self.assertIs(first, second)
        self.assertEqual(first.input_element("getProduct"), "GetProductRequest")
        mock_transport_ctor.assert_called_once_with(session=session, timeout=5.0, operation_timeout=5.0)
        mock_client_ctor.assert_called_once_with(wsdl=WSDL_URL, transport=transport)
        session.close.assert_called_once()

    async def test_load_definition_failure_maps_to_network_error(self):
        mock_client_ctor = MagicMock(side_effect=RuntimeError("404 fetching wsdl"))

        with self._fake_zeep(mock_client_ctor, MagicMock()):
            with patch("requests.Session") as mock_session_ctor:
                session = MagicMock()
                mock_session_ctor.return_value = session

                with self.assertRaises(PromoStandardsError) as ctx:
                    await load_definition(WSDL_URL)

        self.assertEqual(ctx.exception.kind, ErrorKind.NETWORK)
        self.assertEqual(ctx.exception.details["url"], WSDL_URL)
        session.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
