from __future__ import annotations

import argparse
import json
import sys

from lidarview.client import LidarViewerClient


def _print(payload) -> None:
    print(json.dumps(payload))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lidar viewer CLI")

    parser.add_argument("--mode", choices=["direct", "service"], default="service")
    parser.add_argument("--service-url", default="http://127.0.0.1:8000")
    parser.add_argument("--api-key", default=None)

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("datasets", help="List datasets with their active/loaded flags.")
    commands.add_parser("selection", help="Show the active sources.")
    commands.add_parser("loading", help="Show the aggregated loading state.")
    commands.add_parser("ledger", help="Show loaded sources and their resource ids.")

    toggle = commands.add_parser("toggle", help="Toggle a dataset by id or source.")
    toggle.add_argument("target")
    toggle.add_argument(
        "--wait",
        action="store_true",
        help="Wait for pending loads to settle (direct mode only).",
    )

    watch = commands.add_parser("watch", help="Follow viewer events.")
    watch.add_argument("--since", type=int, default=None)
    watch.add_argument("--include-heartbeats", action="store_true")
    return parser


def _toggle(client: LidarViewerClient, target: str):
    datasets = client.list_datasets()
    if any(item.id == target for item in datasets):
        return client.toggle(dataset_id=target)
    return client.toggle(source=target)


def run(args: argparse.Namespace) -> int:
    with LidarViewerClient(
        mode=args.mode,
        service_url=args.service_url,
        api_key=args.api_key,
    ) as client:
        if args.command == "datasets":
            _print([item.model_dump(mode="json") for item in client.list_datasets()])
        elif args.command == "selection":
            _print(client.get_selection().model_dump(mode="json"))
        elif args.command == "loading":
            _print(client.get_loading().model_dump(mode="json"))
        elif args.command == "ledger":
            _print(client.get_ledger())
        elif args.command == "toggle":
            response = _toggle(client, args.target)
            _print(response.model_dump(mode="json"))
            if args.wait:
                client.settle()
                _print({"ledger": client.get_ledger()})
        elif args.command == "watch":
            for event in client.stream_events(since=args.since):
                if event.type == "heartbeat" and not args.include_heartbeats:
                    continue
                print(event.model_dump_json(), flush=True)
    return 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    try:
        code = run(args)
    except KeyboardInterrupt:
        code = 130
    except Exception as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
