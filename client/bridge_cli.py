#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import json
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bridge.config import BridgeConfig, ConfigError
from bridge.dispatch import PacketRouter
from bridge.identity import IdentityBootstrap, SessionIdentity
from bridge.session import BridgeSession
from shared.envelope import InvalidPayloadError, Packet, create_send, decode_payload
from shared.log import configure_root_logging, get_logger
from shared.utils import UINT32_MAX

app = typer.Typer(help="Helper bridge CLI")
console = Console()
logger = get_logger(__name__)


def _load_config(
    config: Optional[Path],
    host: Optional[str],
    port: Optional[int],
    http_origin: Optional[str],
) -> BridgeConfig:
    try:
        return BridgeConfig.load(config, host=host, port=port, http_origin=http_origin)
    except ConfigError as e:
        console.print(f"[red]Config error[/]: {e}")
        raise typer.Exit(code=2)


def _build_packet(cmd: str, payload_hex: str, seq: int) -> Packet:
    try:
        payload = decode_payload(payload_hex)
    except InvalidPayloadError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=2)
    return Packet(command=cmd, sequence=seq, payload=payload)


def _print_packet(packet: Packet) -> None:
    console.print(
        f"[bold cyan]{escape(packet.command)}[/] echo={packet.sequence} "
        f"[dim]{len(packet.payload)} bytes[/] {packet.payload.hex()}"
    )


def _print_identity(identity: SessionIdentity) -> None:
    table = Table(title="Identity")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("uin", str(identity.uin))
    table.add_row("uid", identity.uid)
    table.add_row("profile", json.dumps(identity.profile) if identity.profile else "-")
    console.print(table)


ConfigOpt = typer.Option(None, "--config", envvar="BRIDGE_CONFIG", help="YAML config file")
HostOpt = typer.Option(None, help="Helper host (overrides config)")
PortOpt = typer.Option(None, help="Helper port (overrides config)")
HttpOpt = typer.Option(None, help="HTTP origin for the identity call")
SeqOpt = typer.Option(0, "--seq", min=0, max=UINT32_MAX, help="Sequence token (echo)")


@app.command()
def frame(
    cmd: str = typer.Argument(..., help="Command name"),
    payload_hex: str = typer.Argument("", help="Payload as hex"),
    seq: int = SeqOpt,
):
    """Print the send frame for a packet and exit."""
    packet = _build_packet(cmd, payload_hex, seq)
    console.print(create_send(packet).to_json(), markup=False, highlight=False)


@app.command()
def send(
    cmd: str = typer.Argument(..., help="Command name"),
    payload_hex: str = typer.Argument("", help="Payload as hex"),
    seq: int = SeqOpt,
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    http_origin: Optional[str] = HttpOpt,
):
    """Connect, send one packet and disconnect."""
    cfg = _load_config(config, host, port, http_origin).with_overrides(bootstrap_identity=False)
    packet = _build_packet(cmd, payload_hex, seq)

    async def main_loop() -> bool:
        session = BridgeSession(cfg)
        try:
            if not await session.connect():
                return False
            return await session.send(packet)
        finally:
            await session.close()

    if not asyncio.run(main_loop()):
        console.print(f"[red]Could not send {cmd} to {cfg.ws_url}[/]")
        raise typer.Exit(code=1)
    console.print(f"[green]Sent[/] {cmd} echo={seq}")


@app.command()
def whoami(
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    http_origin: Optional[str] = HttpOpt,
):
    """Ask the helper for its self info over HTTP."""
    cfg = _load_config(config, host, port, http_origin)

    async def main_loop() -> Optional[SessionIdentity]:
        identity = SessionIdentity()
        bootstrap = IdentityBootstrap(cfg.http_url, identity)
        try:
            ok = await bootstrap.run()
        finally:
            await bootstrap.close()
        return identity if ok else None

    identity = asyncio.run(main_loop())
    if identity is None:
        console.print(f"[red]Identity request to {cfg.http_url} failed[/]")
        raise typer.Exit(code=1)
    _print_identity(identity)


@app.command()
def run(
    config: Optional[Path] = ConfigOpt,
    host: Optional[str] = HostOpt,
    port: Optional[int] = PortOpt,
    http_origin: Optional[str] = HttpOpt,
):
    """Keep the bridge connected and print every inbound packet."""
    cfg = _load_config(config, host, port, http_origin)
    console.print(f"[bold green]Bridge starting[/] on {cfg.ws_url}")
    logger.info(f"Bridge CLI running against {cfg.ws_url} (identity via {cfg.http_url})")

    async def main_loop() -> None:
        router = PacketRouter(default_handler=_print_packet)
        session = BridgeSession(cfg, router)
        try:
            if not await session.start():
                console.print(f"[yellow]Helper unreachable, retrying every {cfg.reconnect_interval}s[/]")
            elif session.identity.is_known():
                _print_identity(session.identity)
            await asyncio.Future()  # Run until interrupted
        finally:
            await session.close()
            await router.drain()

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("[dim]Bridge stopped[/]")


def main() -> None:
    configure_root_logging(os.getenv("BRIDGE_LOG_LEVEL", "INFO"))
    app()


if __name__ == "__main__":
    main()
