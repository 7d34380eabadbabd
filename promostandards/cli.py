import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from .auth import Credentials
from .client import PromoStandardsClient
from .discovery.client import DiscoveryClient
from .errors import PromoStandardsError


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_jsonable(item) for item in value]
    return value


def _emit(result: Any) -> None:
    print(json.dumps(_to_jsonable(result)))


def _load_payload(raw: str | None) -> Any:
    """Read the request payload from inline JSON or from @path."""
    if not raw:
        return {}
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    return json.loads(raw)


def _discovery_client(args: argparse.Namespace) -> DiscoveryClient:
    return DiscoveryClient.from_config(
        file_path=args.discovery_config,
        api_url=args.api_url,
        api_key=args.api_key,
    )


async def _list_suppliers(args: argparse.Namespace) -> Any:
    async with _discovery_client(args) as discovery:
        return await discovery.list_suppliers()


async def _search(args: argparse.Namespace) -> Any:
    async with _discovery_client(args) as discovery:
        return await discovery.search(args.query)


async def _endpoints(args: argparse.Namespace) -> Any:
    async with _discovery_client(args) as discovery:
        if args.service:
            return await discovery.get_service_endpoint(args.supplier_id, args.service, args.version)
        return await discovery.get_supported_services(args.supplier_id)


def _credentials(args: argparse.Namespace) -> Credentials | None:
    if args.id:
        return Credentials.model_validate({"id": args.id, "password": args.password, "ws_version": args.version})
    return Credentials.from_env()


async def _call(args: argparse.Namespace) -> Any:
    payload = _load_payload(args.data)
    call_options = {"element_name": args.element_name, "include_raw": args.raw, "no_cache": True}

    if args.config:
        async with PromoStandardsClient.from_config(file_path=args.config) as client:
            return await client.call(args.service, args.operation, payload, **call_options)

    discovery = _discovery_client(args) if args.supplier_id else None
    client = PromoStandardsClient(_credentials(args), discovery=discovery)
    try:
        service = client.service(args.service, args.wsdl, supplier_id=args.supplier_id, version=args.version)
        return await service.call(args.operation, payload, **call_options)
    finally:
        await client.aclose()
        if discovery is not None:
            await discovery.aclose()


def _run(handler, args: argparse.Namespace) -> None:
    try:
        result = asyncio.run(handler(args))
    except PromoStandardsError as exc:
        print(json.dumps({"success": False, "error": exc.to_dict()}))
        print(f"{exc.kind.value}: {exc.message}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    _emit(result)
    sys.exit(0)


def cmd_suppliers(args):
    """Handle suppliers subcommand."""
    _run(_list_suppliers, args)


def cmd_search(args):
    """Handle search subcommand."""
    _run(_search, args)


def cmd_endpoints(args):
    """Handle endpoints subcommand."""
    _run(_endpoints, args)


def cmd_call(args):
    """Handle call subcommand."""
    if not (args.config or args.wsdl or args.supplier_id):
        print("Error: must specify --wsdl, --supplier-id or --config", file=sys.stderr)
        sys.exit(2)
        return
    _run(_call, args)


def _add_discovery_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--discovery-config", help="Path to discovery JSON/YAML config")
    parser.add_argument("--api-url", help="Directory API base URL")
    parser.add_argument("--api-key", help="Directory API key")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PromoStandards client CLI")
    subparsers = parser.add_subparsers(dest="command", help="Subcommand to run")

    suppliers_parser = subparsers.add_parser("suppliers", help="List suppliers from the directory")
    _add_discovery_arguments(suppliers_parser)

    search_parser = subparsers.add_parser("search", help="Search suppliers by name, id or association number")
    search_parser.add_argument("query", help="Search term")
    _add_discovery_arguments(search_parser)

    endpoints_parser = subparsers.add_parser("endpoints", help="Show the services a supplier publishes")
    endpoints_parser.add_argument("supplier_id", help="Supplier id (company code)")
    endpoints_parser.add_argument("--service", help="Service family, returns the single matching endpoint")
    endpoints_parser.add_argument("--version", help="Service version (default: latest)")
    _add_discovery_arguments(endpoints_parser)

    call_parser = subparsers.add_parser("call", help="Call a service operation")
    call_parser.add_argument("--service", required=True, help="Service family or configured service name")
    call_parser.add_argument("--operation", required=True, help="Operation name, e.g. getProduct")
    call_parser.add_argument("--data", help="Request payload as JSON or @path/to/file.json")
    call_parser.add_argument("--wsdl", help="WSDL URL of the service")
    call_parser.add_argument("--supplier-id", help="Resolve the endpoint through the directory")
    call_parser.add_argument("--version", help="Service version")
    call_parser.add_argument("--config", help="Client JSON/YAML config with named services")
    call_parser.add_argument("--id", help="Account id (default: PROMOSTANDARDS_ID)")
    call_parser.add_argument("--password", help="Account password (default: PROMOSTANDARDS_PASSWORD)")
    call_parser.add_argument("--element-name", help="Override the request element name")
    call_parser.add_argument("--raw", action="store_true", help="Include raw request and response")
    _add_discovery_arguments(call_parser)

    return parser


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "suppliers":
        cmd_suppliers(args)
    elif args.command == "search":
        cmd_search(args)
    elif args.command == "endpoints":
        cmd_endpoints(args)
    elif args.command == "call":
        cmd_call(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
