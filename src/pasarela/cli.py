"""
Pasarela CLI — pay municipal services through the simulated X402 flow.

Commands:
    pasarela services   List the service catalog
    pasarela pay        Pay for one service end to end
    pasarela history    View locally recorded payments
    pasarela demo       Run a full demo flow, including a failed attempt
"""

from __future__ import annotations

import asyncio
import logging
import random
import sys
import time
from typing import Optional

import click

from . import __version__
from .accessibility import DetailLevel, Language
from .catalog import (
    MUNICIPAL_SERVICES,
    ServiceCategory,
    get_service,
    resource_path,
    search_services,
    services_by_category,
)
from .config import PasarelaConfig
from .errors import PasarelaError
from .facilitator import FacilitatorClient, SimulatedFacilitatorBackend
from .faults import AlwaysFail, FaultPolicy, NoFaults, RandomFaults, SETTLE, SIGN
from .history import PaymentHistory
from .money import format_eur, format_sats
from .session import PaymentSession, SessionConfig, SessionEvent, SessionState
from .wallet import JsonConnectionStore, SimulatedWalletProvider, WalletSigner


STATE_ICONS = {
    SessionState.IDLE: "⏸️",
    SessionState.REQUESTING: "🔄",
    SessionState.PAYMENT_REQUIRED: "💳",
    SessionState.SIGNING: "✍️",
    SessionState.BROADCASTING: "📡",
    SessionState.CONFIRMING: "⏳",
    SessionState.CONFIRMED: "✅",
    SessionState.FAILED: "❌",
}


def _echo_event(event: SessionEvent) -> None:
    click.echo(f"   {STATE_ICONS[event.state]} {event.phrase}")
    if event.accessibility is not None and event.state in (SessionState.PAYMENT_REQUIRED, SessionState.CONFIRMED):
        click.echo(f"      {event.accessibility.plain_language}")


def _fault_policy(rate: float, operation: str, rng: random.Random) -> FaultPolicy:
    if rate <= 0:
        return NoFaults()
    if rate >= 1:
        return AlwaysFail(operation)
    return RandomFaults(rate, rng)


def _history(config: PasarelaConfig) -> PaymentHistory:
    return PaymentHistory(path=config.history_path, key_path=config.history_key_path)


# ── CLI ───────────────────────────────────────────────────────────

@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log protocol steps to stderr")
def main(verbose: bool):
    """Pasarela — accessible X402 payments for municipal services."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")


@main.command()
@click.option("--category", type=click.Choice([c.value for c in ServiceCategory]), default=None,
              help="Only list one category")
@click.option("--search", default=None, help="Match service name or description")
@click.option("--lang", type=click.Choice([l.value for l in Language]), default=None,
              help="Display language (default: PASARELA_LANGUAGE or es)")
def services(category: Optional[str], search: Optional[str], lang: Optional[str]):
    """List payable services."""
    language = Language(lang) if lang else PasarelaConfig.from_env().language

    if search:
        found = search_services(search, language)
    elif category:
        found = services_by_category(category)
    else:
        found = list(MUNICIPAL_SERVICES)
    if category and search:
        found = [s for s in found if s.category.value == category]

    if not found:
        click.echo("No services found.")
        return

    for service in found:
        auth = " 🔒" if service.requires_auth else ""
        click.echo(
            f"  {service.id:<14} {format_eur(service.price_eur):>10} "
            f"({format_sats(service.price)}) {service.name.get(language)}{auth}"
        )


@main.command()
@click.argument("service_id")
@click.option("--lang", type=click.Choice([l.value for l in Language]), default=None,
              help="Announcement language")
@click.option("--level", type=click.Choice([d.value for d in DetailLevel]), default=None,
              help="Accessibility detail level")
@click.option("--balance", type=int, default=None, help="Seed wallet balance in sats (default: random)")
@click.option("--reject-rate", type=float, default=0.0, help="Probability the user rejects the signature")
@click.option("--failure-rate", type=float, default=0.0, help="Probability settlement fails")
@click.option("--seed", type=int, default=None, help="Seed for simulated randomness")
@click.option("--fast", is_flag=True, help="Skip simulated latency and UI pacing")
@click.option("--record/--no-record", default=True, help="Save confirmed payments to local history")
def pay(
    service_id: str,
    lang: Optional[str],
    level: Optional[str],
    balance: Optional[int],
    reject_rate: float,
    failure_rate: float,
    seed: Optional[int],
    fast: bool,
    record: bool,
):
    """Pay for a service through the full X402 flow."""
    service = get_service(service_id)
    if service is None:
        click.echo(f"❌ Service not found: {service_id}", err=True)
        sys.exit(1)

    config = PasarelaConfig.from_env()
    language = Language(lang) if lang else config.language
    detail = DetailLevel(level) if level else config.detail_level
    rng = random.Random(seed)
    latency = 0.0 if fast else 1.0

    wallet = WalletSigner(
        provider=SimulatedWalletProvider(
            initial_balance=balance,
            faults=_fault_policy(reject_rate, SIGN, rng),
            rng=rng,
            latency_scale=latency,
        ),
        network=config.network,
        store=JsonConnectionStore(config.connection_path),
    )
    facilitator = FacilitatorClient(
        SimulatedFacilitatorBackend(
            faults=_fault_policy(failure_rate, SETTLE, rng),
            network=config.network,
            latency_scale=latency,
            rng=rng,
        ),
        locale=language,
        detail_level=detail,
    )
    session = PaymentSession(
        wallet,
        facilitator,
        announcer=_echo_event,
        config=SessionConfig(
            payment_required_delay=0.0 if fast else 1.0,
            poll_interval=0.0 if fast else 0.5,
        ),
        history=_history(config) if record else None,
    )

    async def run() -> SessionState:
        if not await wallet.restore():
            await wallet.connect()
        click.echo(f"👛 Wallet {wallet.info.address} — {format_sats(wallet.info.balance or 0)}")
        click.echo(f"🧾 {service.name.get(language)} — {format_eur(service.price_eur)} ({format_sats(service.price)})")
        return await session.start(service)

    try:
        state = asyncio.run(run())
    except PasarelaError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    if state is SessionState.CONFIRMED and session.confirmation is not None:
        click.echo(f"   Tx ID:     {session.confirmation.txid}")
        if session.confirmation.receipt:
            click.echo(f"   Receipt:   {session.confirmation.receipt.id}")
        click.echo(f"   Balance:   {format_sats(wallet.info.balance or 0)}")
    else:
        click.echo(f"❌ Payment failed: {session.error}", err=True)
        sys.exit(1)


@main.command()
@click.option("--address", default=None, help="Only show payments from this wallet address")
@click.option("--limit", type=int, default=20, help="Number of payments")
@click.option("--lang", type=click.Choice([l.value for l in Language]), default=None)
def history(address: Optional[str], limit: int, lang: Optional[str]):
    """View locally recorded payments, newest first."""
    config = PasarelaConfig.from_env()
    language = Language(lang) if lang else config.language
    try:
        entries = _history(config).entries(payer=address, limit=limit)
    except RuntimeError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    if not entries:
        click.echo("No payments recorded.")
        return

    for entry in entries:
        c = entry.confirmation
        ts = time.strftime("%Y-%m-%d %H:%M", time.localtime(c.timestamp / 1000))
        receipt = f" [{c.receipt.id}]" if c.receipt else ""
        click.echo(f"  {ts} {format_sats(c.amount):>14} → {c.service.name.get(language)}{receipt}")
        click.echo(f"        tx {c.txid}")


@main.command()
@click.option("--lang", type=click.Choice([l.value for l in Language]), default="en")
def demo(lang: str):
    """Run a demo of the X402 flow against the simulators."""
    language = Language(lang)

    click.echo("🎬 Pasarela Demo — X402 Pay-to-Access Flow")
    click.echo("=" * 50)

    async def run():
        wallet = WalletSigner(SimulatedWalletProvider(initial_balance=1_000_000, latency_scale=0.0))
        backend = SimulatedFacilitatorBackend(latency_scale=0.0)
        facilitator = FacilitatorClient(backend, locale=language, detail_level=DetailLevel.STANDARD)
        session = PaymentSession(wallet, facilitator, announcer=_echo_event, config=SessionConfig(poll_interval=0.0))

        click.echo("\n1️⃣  Connecting wallet...")
        info = await wallet.connect()
        click.echo(f"   Address: {info.address}")
        click.echo(f"   Balance: {format_sats(info.balance or 0)}")

        ibi = get_service("ibi-2024")
        click.echo(f"\n2️⃣  Paying {ibi.name.get(language)}...")
        await session.start(ibi)
        click.echo(f"   Balance now: {format_sats(wallet.info.balance or 0)}")

        click.echo("\n3️⃣  Accessing the resource with the payment proof...")
        body = await facilitator.access_resource(resource_path(ibi), session.txid or "")
        click.echo(f"   Granted: {body}")

        click.echo("\n4️⃣  Paying again, but the user rejects the signature...")
        wallet.provider.faults = AlwaysFail(SIGN)
        session.close()
        await session.start(get_service("water"))
        click.echo(f"   Balance unchanged: {format_sats(wallet.info.balance or 0)}")

        click.echo("\n5️⃣  Facilitator history...")
        for confirmation in await facilitator.get_history(info.address):
            click.echo(f"   {confirmation.txid[:16]}… {format_sats(confirmation.amount)} ({confirmation.confirmations} conf)")

    asyncio.run(run())
    click.echo("\n" + "=" * 50)
    click.echo("🎉 Demo complete! Request → 402 → Sign → Broadcast → Confirm")


if __name__ == "__main__":
    main()
