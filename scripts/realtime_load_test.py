"""Fan-out load test for the Parley realtime websocket endpoint.

Registers one sender and ``--listeners`` receivers through the HTTP API,
puts them all in one conversation, opens a websocket per receiver and then
posts ``--messages`` messages, measuring how long each ``new_message`` frame
takes to reach every listener.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import statistics
import sys
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx

try:  # pragma: no cover - optional dependency
    from websockets.asyncio.client import ClientConnection, connect
except Exception as exc:  # pragma: no cover - runtime guard
    raise SystemExit(
        "The 'websockets' package is required to run this load test tool."
    ) from exc


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ListenerResult:
    """Frames observed by a single websocket listener."""

    user_id: int
    connected: bool = False
    received: int = 0
    latencies: list[float] = field(default_factory=list)
    other_frames: int = 0
    error: str | None = None


def _ws_url(base_url: str, token: str) -> str:
    scheme, _, rest = base_url.partition("://")
    ws_scheme = "wss" if scheme == "https" else "ws"
    return f"{ws_scheme}://{rest.rstrip('/')}/ws?token={token}"


async def _login(client: httpx.AsyncClient, name: str) -> tuple[int, str]:
    response = await client.post("/api/session", json={"name": name})
    response.raise_for_status()
    body = response.json()
    return body["user_id"], body["identifier"]


async def _wait_connected(websocket: ClientConnection, timeout: float) -> None:
    frame = json.loads(await asyncio.wait_for(websocket.recv(), timeout=timeout))
    if frame.get("type") != "connected":
        raise RuntimeError(f"unexpected greeting: {frame!r}")


async def _listen(
    websocket: ClientConnection,
    result: ListenerResult,
    *,
    conversation_id: int,
    expected: int,
    sent_at: dict[str, float],
    timeout: float,
) -> None:
    deadline = time.perf_counter() + timeout
    while result.received < expected:
        remaining = deadline - time.perf_counter()
        if remaining <= 0:
            break
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=remaining)
        except asyncio.TimeoutError:
            break
        frame = json.loads(raw)
        if frame.get("type") != "new_message" or frame.get("conversation_id") != conversation_id:
            result.other_frames += 1
            continue
        result.received += 1
        started = sent_at.get(frame["payload"]["message"]["content"])
        if started is not None:
            result.latencies.append(time.perf_counter() - started)


async def _run_listener(
    url: str,
    result: ListenerResult,
    ready: asyncio.Event,
    barrier: list[int],
    total: int,
    **listen_kwargs: Any,
) -> ListenerResult:
    try:
        async with connect(url, open_timeout=listen_kwargs["timeout"]) as websocket:
            await _wait_connected(websocket, listen_kwargs["timeout"])
            result.connected = True
            barrier.append(result.user_id)
            if len(barrier) == total:
                ready.set()
            await _listen(websocket, result, **listen_kwargs)
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # pragma: no cover - network failures are non-deterministic
        result.error = f"{type(exc).__name__}: {exc}"
        logger.warning("listener %s failed: %s", result.user_id, result.error)
        barrier.append(result.user_id)
        if len(barrier) == total:
            ready.set()
    return result


def _aggregate(results: Iterable[ListenerResult], *, messages: int, elapsed: float) -> dict[str, Any]:
    results = list(results)
    connected = [item for item in results if item.connected]
    latencies = sorted(lat for item in connected for lat in item.latencies)
    delivered = sum(item.received for item in connected)

    def _stats(samples: list[float]) -> dict[str, float] | None:
        if not samples:
            return None
        count = len(samples)
        return {
            "avg": statistics.fmean(samples),
            "p50": statistics.median(samples),
            "p95": samples[int(0.95 * (count - 1))],
            "p99": samples[int(0.99 * (count - 1))],
            "max": samples[-1],
        }

    return {
        "listeners": len(results),
        "connected": len(connected),
        "messages_posted": messages,
        "deliveries_expected": messages * len(connected),
        "deliveries_received": delivered,
        "unrelated_frames": sum(item.other_frames for item in connected),
        "delivery_latency": _stats(latencies),
        "deliveries_per_second": (delivered / elapsed) if elapsed else 0.0,
        "failures": [item.error for item in results if item.error],
        "wall_clock_seconds": elapsed,
    }


async def run_load_test(args: argparse.Namespace) -> dict[str, Any]:
    """Entry point used by the CLI wrapper."""

    run_id = uuid.uuid4().hex[:6]
    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        sender_id, sender_token = await _login(client, f"lt{run_id}s")
        listeners = [await _login(client, f"lt{run_id}{index:04d}") for index in range(args.listeners)]
        sender_headers = {"Authorization": f"Bearer {sender_token}"}

        response = await client.post(
            "/api/conversations",
            json={"name": f"load {run_id}", "members": [user_id for user_id, _ in listeners]},
            headers=sender_headers,
        )
        response.raise_for_status()
        conversation_id = response.json()["id"]
        logger.info(
            "conversation %s ready: sender=%s listeners=%s", conversation_id, sender_id, len(listeners)
        )

        sent_at: dict[str, float] = {}
        ready = asyncio.Event()
        barrier: list[int] = []
        tasks = [
            asyncio.create_task(
                _run_listener(
                    _ws_url(args.base_url, token),
                    ListenerResult(user_id=user_id),
                    ready,
                    barrier,
                    len(listeners),
                    conversation_id=conversation_id,
                    expected=args.messages,
                    sent_at=sent_at,
                    timeout=args.timeout,
                ),
                name=f"realtime-load-listener-{user_id}",
            )
            for user_id, token in listeners
        ]

        await asyncio.wait_for(ready.wait(), timeout=args.timeout)
        started = time.perf_counter()
        for seq in range(args.messages):
            content = f"load {run_id} #{seq}"
            sent_at[content] = time.perf_counter()
            response = await client.post(
                f"/api/conversations/{conversation_id}/messages",
                json={"content": content},
                headers=sender_headers,
            )
            response.raise_for_status()
            if args.interval:
                await asyncio.sleep(args.interval)

        results = await asyncio.gather(*tasks)
        elapsed = time.perf_counter() - started

    summary = _aggregate(results, messages=args.messages, elapsed=elapsed)
    logger.info(
        "load test finished: %s/%s deliveries",
        summary["deliveries_received"],
        summary["deliveries_expected"],
    )
    return summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("base_url", help="API base URL, e.g. http://localhost:8000")
    parser.add_argument("--listeners", type=int, default=10, help="Number of websocket receivers")
    parser.add_argument("--messages", type=int, default=20, help="Messages posted by the sender")
    parser.add_argument(
        "--interval",
        type=float,
        default=0.0,
        help="Delay between posted messages (seconds)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Upper bound for connecting and for waiting on deliveries (seconds)",
    )
    parser.add_argument("--json", action="store_true", help="Emit the summary as JSON")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        summary = asyncio.run(run_load_test(args))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("interrupted by user")
        return 130

    if args.json:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print("\n=== Load Test Summary ===")
        for key, value in summary.items():
            print(f"{key}: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
