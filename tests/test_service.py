import unittest
from unittest.mock import AsyncMock

from promostandards.cache import InMemoryResponseCache
from promostandards.errors import ErrorKind, PromoStandardsError
from promostandards.service import CallResult, PromoStandardsService
from promostandards.transport import TransportResponse
from promostandards.wsdl import InterfaceDefinition

WSDL_URL = "https://supplier.test/inventory?wsdl"
ENDPOINT_URL = "https://supplier.test/inventory"
CREDENTIALS = {"id": "acct", "password": "pw"}

INVENTORY_RESPONSE = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <GetInventoryLevelsResponse xmlns="http://www.promostandards.org/WSDL/Inventory/2.0.0/">
      <Inventory>
        <productId>ABC</productId>
        <PartInventoryArray>
          <PartInventory><partId>ABC-1</partId><mainPart>true</mainPart></PartInventory>
        </PartInventoryArray>
      </Inventory>
    </GetInventoryLevelsResponse>
  </soap:Body>
</soap:Envelope>"""

EMPTY_RESPONSE = """<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body><GetInventoryLevelsResponse><ErrorMessage>nothing here</ErrorMessage></GetInventoryLevelsResponse></soap:Body>
</soap:Envelope>"""

FAULT_RESPONSE = """<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <soap:Fault>
      <faultcode>soap:Server</faultcode>
      <faultstring>Invalid ID</faultstring>
      <detail><errorCode>100</errorCode></detail>
    </soap:Fault>
  </soap:Body>
</soap:Envelope>"""


class FakeTransport:
    """Records posted envelopes and replays queued responses or errors."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    async def post(self, url, body, headers=None):
        self.requests.append({"url": url, "body": body, "headers": headers or {}})
        outcome = self.responses.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class BrokenCache:
    def __init__(self):
        self.writes = []

    async def get(self, key):
        raise RuntimeError("cache backend unavailable")

    async def set(self, key, value):
        self.writes.append(key)

    async def delete(self, key):
        pass


def ok(xml=INVENTORY_RESPONSE):
    return TransportResponse(status=200, data=xml, headers={"content-type": "text/xml"})


def make_service(transport, **options):
    options.setdefault("credentials", CREDENTIALS)
    options.setdefault("wsdl", WSDL_URL)
    options.setdefault("endpoint", ENDPOINT_URL)
    options.setdefault("introspect", False)
    return PromoStandardsService("inventory", transport=transport, **options)


class CallTests(unittest.IsolatedAsyncioTestCase):
    async def test_call_posts_envelope_and_returns_body(self):
        transport = FakeTransport(ok())
        service = make_service(transport)

        result = await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertEqual(result["inventory"]["productId"], "ABC")
        self.assertEqual(result["inventory"]["partInventoryArray"]["partInventory"]["mainPart"], True)

        request = transport.requests[0]
        self.assertEqual(request["url"], ENDPOINT_URL)
        self.assertEqual(request["headers"]["SOAPAction"], "getInventoryLevels")
        self.assertEqual(request["headers"]["Content-Type"], "text/xml; charset=utf-8")
        self.assertIn(
            '<ns:GetInventoryLevelsRequest xmlns:ns="http://www.promostandards.org/WSDL/Inventory/2.0.0/">',
            request["body"],
        )
        self.assertIn("<ns:wsVersion>2.0.0</ns:wsVersion>", request["body"])
        self.assertIn("<ns:id>acct</ns:id>", request["body"])
        self.assertIn("<ns:productId>ABC</ns:productId>", request["body"])

    async def test_auth_fields_override_payload(self):
        transport = FakeTransport(ok())
        service = make_service(transport)

        await service.call("getInventoryLevels", {"productId": "ABC", "id": "intruder"})

        body = transport.requests[0]["body"]
        self.assertIn("<ns:id>acct</ns:id>", body)
        self.assertNotIn("intruder", body)

    async def test_include_raw_returns_call_result(self):
        transport = FakeTransport(ok())
        service = make_service(transport)

        outcome = await service.call("getInventoryLevels", {"productId": "ABC"}, include_raw=True)

        self.assertIsInstance(outcome, CallResult)
        self.assertEqual(outcome.result["inventory"]["productId"], "ABC")
        self.assertEqual(outcome.raw_request, transport.requests[0]["body"])
        self.assertEqual(outcome.raw_response, INVENTORY_RESPONSE)
        self.assertEqual(outcome.response_headers, {"content-type": "text/xml"})

    async def test_unknown_operation_lists_available_operations(self):
        transport = FakeTransport()
        service = make_service(transport)

        with self.assertRaises(PromoStandardsError) as ctx:
            await service.call("getEverything")

        self.assertEqual(ctx.exception.kind, ErrorKind.VALIDATION)
        self.assertEqual(ctx.exception.details["available_operations"], ["getInventoryLevels", "getFilterValues"])
        self.assertEqual(ctx.exception.details["service"], "Inventory")
        self.assertEqual(transport.requests, [])

    async def test_required_fields_depend_on_version(self):
        transport = FakeTransport(ok())
        legacy = make_service(transport, version="1.2.1")

        with self.assertRaises(PromoStandardsError) as ctx:
            await legacy.call("getInventoryLevels", {})

        self.assertEqual(ctx.exception.kind, ErrorKind.VALIDATION)
        self.assertEqual(ctx.exception.details["missing"], ["productId"])
        self.assertEqual(transport.requests, [])

        current = make_service(transport)
        await current.call("getInventoryLevels", {})
        self.assertEqual(len(transport.requests), 1)

    async def test_response_without_expected_keys_is_rejected(self):
        service = make_service(FakeTransport(ok(EMPTY_RESPONSE)))

        with self.assertRaises(PromoStandardsError) as ctx:
            await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertEqual(ctx.exception.kind, ErrorKind.VALIDATION)
        self.assertEqual(ctx.exception.details["expected_keys"], ["inventory"])
        self.assertEqual(ctx.exception.details["received_keys"], ["errorMessage"])


class ErrorMappingTests(unittest.IsolatedAsyncioTestCase):
    async def test_fault_sent_with_http_500_becomes_service_error(self):
        failure = PromoStandardsError.network("HTTP 500", {"url": ENDPOINT_URL, "status": 500, "response": FAULT_RESPONSE})
        service = make_service(FakeTransport(failure))

        with self.assertRaises(PromoStandardsError) as ctx:
            await service.call("getInventoryLevels", {"productId": "ABC"})

        error = ctx.exception
        self.assertEqual(error.kind, ErrorKind.SERVICE)
        self.assertEqual(error.message, "Invalid ID")
        self.assertEqual(error.details["fault_code"], "soap:Server")
        self.assertEqual(error.details["detail"], {"errorCode": 100})
        self.assertEqual(error.details["status"], 500)
        self.assertEqual(error.details["service"], "Inventory")
        self.assertEqual(error.details["operation"], "getInventoryLevels")

    async def test_fault_in_successful_response_becomes_service_error(self):
        service = make_service(FakeTransport(ok(FAULT_RESPONSE)))

        with self.assertRaises(PromoStandardsError) as ctx:
            await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertEqual(ctx.exception.kind, ErrorKind.SERVICE)
        self.assertEqual(ctx.exception.details["status"], 200)

    async def test_network_error_is_wrapped_with_original(self):
        failure = PromoStandardsError.network("Network error: connection refused", {"url": ENDPOINT_URL})
        service = make_service(FakeTransport(failure))

        with self.assertRaises(PromoStandardsError) as ctx:
            await service.call("getInventoryLevels", {"productId": "ABC"})

        error = ctx.exception
        self.assertEqual(error.kind, ErrorKind.SERVICE)
        self.assertEqual(error.message, "Network error: connection refused")
        self.assertIs(error.details["original_error"], failure)
        self.assertIs(error.__cause__, failure)
        self.assertIsNone(error.details["status"])

    async def test_timeout_kind_is_preserved(self):
        failure = PromoStandardsError.timeout("Request timed out after 30.0s", 30.0, {"url": ENDPOINT_URL})
        service = make_service(FakeTransport(failure))

        with self.assertRaises(PromoStandardsError) as ctx:
            await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertEqual(ctx.exception.kind, ErrorKind.TIMEOUT)
        self.assertEqual(ctx.exception.details["operation"], "getInventoryLevels")

    def test_missing_credentials_is_authentication_error(self):
        with self.assertRaises(PromoStandardsError) as ctx:
            PromoStandardsService("inventory", wsdl=WSDL_URL)

        self.assertEqual(ctx.exception.kind, ErrorKind.AUTHENTICATION)

    def test_missing_target_is_validation_error(self):
        with self.assertRaises(PromoStandardsError) as ctx:
            PromoStandardsService("inventory", credentials=CREDENTIALS)

        self.assertEqual(ctx.exception.kind, ErrorKind.VALIDATION)

    def test_unsupported_static_version_is_rejected(self):
        with self.assertRaises(PromoStandardsError) as ctx:
            make_service(FakeTransport(), version="9.9.9")

        self.assertEqual(ctx.exception.kind, ErrorKind.VALIDATION)
        self.assertEqual(ctx.exception.details["supported_versions"], ["1.2.1", "2.0.0"])

    def test_dynamic_target_defers_version_check(self):
        service = PromoStandardsService(
            "inventory",
            credentials=CREDENTIALS,
            resolver=lambda version: {"wsdl": WSDL_URL},
            version="9.9.9",
            transport=FakeTransport(),
        )

        self.assertEqual(service.version, "9.9.9")


class CacheTests(unittest.IsolatedAsyncioTestCase):
    async def test_cached_response_is_served_until_ttl(self):
        transport = FakeTransport(ok(), ok())
        clock = FakeClock()
        cache = InMemoryResponseCache()
        service = make_service(transport, cache=cache, clock=clock)

        first = await service.call("getInventoryLevels", {"productId": "ABC"})
        clock.now += 300
        second = await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertEqual(first, second)
        self.assertEqual(len(transport.requests), 1)
        self.assertEqual(len(cache), 1)

        clock.now += 1
        await service.call("getInventoryLevels", {"productId": "ABC"})
        self.assertEqual(len(transport.requests), 2)

    async def test_cache_key_ignores_payload_key_order(self):
        service = make_service(FakeTransport())

        self.assertEqual(
            service.cache_key("getFilterValues", {"productId": "A", "filter": 1}),
            service.cache_key("getFilterValues", {"filter": 1, "productId": "A"}),
        )
        self.assertTrue(service.cache_key("getFilterValues", None).startswith("Inventory:2.0.0:getFilterValues:"))

    async def test_no_cache_bypasses_read_and_write(self):
        transport = FakeTransport(ok(), ok())
        cache = InMemoryResponseCache()
        service = make_service(transport, cache=cache)

        await service.call("getInventoryLevels", {"productId": "ABC"}, no_cache=True)
        await service.call("getInventoryLevels", {"productId": "ABC"}, no_cache=True)

        self.assertEqual(len(transport.requests), 2)
        self.assertEqual(len(cache), 0)

    async def test_cache_failure_is_logged_and_treated_as_miss(self):
        transport = FakeTransport(ok())
        cache = BrokenCache()
        service = make_service(transport, cache=cache)

        with self.assertLogs("promostandards.service.inventory", level="WARNING") as logs:
            result = await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertEqual(result["inventory"]["productId"], "ABC")
        self.assertEqual(len(cache.writes), 1)
        self.assertTrue(any("Cache read failed" in line for line in logs.output))


class DefinitionTests(unittest.IsolatedAsyncioTestCase):
    async def test_definition_supplies_element_namespace_and_address(self):
        transport = FakeTransport(ok(), ok())
        loader = AsyncMock(
            return_value=InterfaceDefinition(
                target_namespace="urn:supplier:inventory",
                operations={"getInventoryLevels": "Request", "getFilterValues": None},
                address="https://supplier.test/soap",
            )
        )
        service = make_service(transport, endpoint=None, introspect=True, definition_loader=loader)

        await service.call("getInventoryLevels", {"productId": "ABC"})
        await service.call("getInventoryLevels", {"productId": "ABC"}, element_name="CustomRequest")

        loader.assert_awaited_once_with(WSDL_URL, 30.0)
        self.assertEqual(transport.requests[0]["url"], "https://supplier.test/soap")
        self.assertIn('<ns:Request xmlns:ns="urn:supplier:inventory">', transport.requests[0]["body"])
        self.assertIn("<ns:CustomRequest ", transport.requests[1]["body"])

        operations = await service.get_available_operations()
        self.assertEqual(
            operations,
            [
                {"name": "getInventoryLevels", "input_element": "Request"},
                {"name": "getFilterValues", "input_element": "GetFilterValuesRequest"},
            ],
        )

    async def test_loader_failure_falls_back_to_conventions(self):
        transport = FakeTransport(ok())
        loader = AsyncMock(side_effect=PromoStandardsError.network("WSDL unreachable"))
        service = make_service(transport, endpoint=None, introspect=True, definition_loader=loader)

        with self.assertLogs("promostandards.service.inventory", level="WARNING"):
            await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertEqual(transport.requests[0]["url"], ENDPOINT_URL)
        self.assertIn(
            '<ns:GetInventoryLevelsRequest xmlns:ns="http://www.promostandards.org/WSDL/Inventory/2.0.0/">',
            transport.requests[0]["body"],
        )

    async def test_explicit_namespace_wins(self):
        transport = FakeTransport(ok())
        service = make_service(transport, namespace="urn:custom")

        await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertIn('xmlns:ns="urn:custom"', transport.requests[0]["body"])

    async def test_operations_without_introspection_come_from_table(self):
        service = make_service(FakeTransport())

        operations = await service.get_available_operations()

        self.assertEqual(
            operations,
            [
                {"name": "getInventoryLevels", "input_element": "GetInventoryLevelsRequest"},
                {"name": "getFilterValues", "input_element": "GetFilterValuesRequest"},
            ],
        )


class ResolutionTests(unittest.IsolatedAsyncioTestCase):
    async def test_resolved_version_drives_request(self):
        transport = FakeTransport(ok())
        service = PromoStandardsService(
            "inventory",
            credentials=CREDENTIALS,
            resolver=lambda version: {"wsdl": WSDL_URL, "endpoint": ENDPOINT_URL, "version": "1.2.1"},
            transport=transport,
            introspect=False,
        )

        self.assertFalse(service.is_resolved)
        await service.call("getInventoryLevels", {"productId": "ABC"})

        self.assertTrue(service.is_resolved)
        self.assertEqual(service.version, "1.2.1")
        body = transport.requests[0]["body"]
        self.assertIn("<ns:wsVersion>1.2.1</ns:wsVersion>", body)
        self.assertIn("http://www.promostandards.org/WSDL/Inventory/1.2.1/", body)

    async def test_get_info_and_credential_updates(self):
        transport = FakeTransport()
        service = make_service(transport)

        info = service.get_info()
        service.update_credentials(password="rotated")
        await service.aclose()

        self.assertEqual(info["service"], "Inventory")
        self.assertEqual(info["state"], "static")
        self.assertEqual(info["operations"], ["getInventoryLevels", "getFilterValues"])
        self.assertEqual(service.credentials.password, "rotated")
        self.assertFalse(transport.closed)


if __name__ == "__main__":
    unittest.main()
