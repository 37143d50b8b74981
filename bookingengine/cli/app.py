"""
Main CLI application using Typer.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ..adapters.firestore_store import FirestoreStore
from ..adapters.memory_store import MemoryStore
from ..config import AppConfig
from ..domain.models import BookingRequest, ClientInfo, format_clock
from ..domain.results import Rejected
from ..services.booking_orchestrator import BookingOrchestrator, describe

SAMPLE_DATA = Path(__file__).resolve().parent.parent / "adapters" / "sample_data.json"

app = typer.Typer(
    name="bookingengine",
    help="Check availability and manage bookings for multi-staff service businesses",
    add_completion=False,
)

console = Console()

TenantOption = Annotated[
    Optional[str],
    typer.Option("--tenant", "-t", help="Tenant id (email). Defaults to default_tenant from the config"),
]


@dataclass
class CliOptions:
    config_file: Optional[Path] = None
    data_file: Optional[Path] = None
    verbose: bool = False


@dataclass
class Session:
    config: AppConfig
    store: object
    orchestrator: BookingOrchestrator
    writable_file: Optional[Path] = None

    def persist(self) -> None:
        """Write in-memory changes back to the data file, if there is one."""
        if isinstance(self.store, MemoryStore) and self.writable_file is not None:
            self.store.save(self.writable_file)


def _configure_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_store(config: AppConfig, data_file: Optional[Path]):
    """Return ``(store, writable_file)`` for the configured backend."""
    if data_file is not None:
        return MemoryStore.from_json_file(data_file), data_file

    if config.store.backend == "firestore":
        return FirestoreStore.from_config(config.store), None

    if config.store.data_file is not None:
        return MemoryStore.from_json_file(config.store.data_file), config.store.data_file

    # Packaged demo data is read-only
    return MemoryStore.from_json_file(SAMPLE_DATA), None


def _open_session(ctx: typer.Context) -> Session:
    options: CliOptions = ctx.obj or CliOptions()
    try:
        config = AppConfig.load_or_default(options.config_file)
        _configure_logging(config.log_level, options.verbose)
        store, writable_file = _build_store(config, options.data_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    orchestrator = BookingOrchestrator.from_store(store, config=config.engine)
    return Session(config=config, store=store, orchestrator=orchestrator, writable_file=writable_file)


def _tenant(session: Session, tenant: Optional[str]) -> str:
    resolved = tenant or session.config.default_tenant
    if not resolved:
        console.print("[bold red]Error:[/bold red] No tenant given. Use --tenant or set default_tenant.")
        raise typer.Exit(1)
    return resolved


def _unwrap(result):
    """Return the value of an ``Ok`` result; print rejections and exit."""
    if isinstance(result, Rejected):
        console.print(f"[bold red]✗ Rejected:[/bold red] {escape(describe(result))}")
        if result.retryable:
            console.print("[dim]The store is unreachable; the request can be retried.[/dim]")
        raise typer.Exit(1)
    return result.value


def _print_booking(booking, title: str) -> None:
    console.print(f"[bold green]✓ {title}[/bold green]")
    console.print(f"   ID: {booking.id}")
    console.print(f"   Service: {booking.service_name or booking.service_id}")
    console.print(
        f"   Time: {booking.date.to_date_string()} "
        f"{format_clock(booking.start_time)}-{format_clock(booking.end_time)} ({booking.duration} min)"
    )
    if booking.staff_id:
        console.print(f"   Staff: {booking.staff_name or booking.staff_id}")
    console.print(f"   Status: {booking.status.value}")


def _print_conflict(availability) -> None:
    conflict = availability.conflicting_booking
    if conflict is not None:
        console.print(
            f"   Conflicts with booking {conflict.id} "
            f"({format_clock(conflict.start_time)}-{format_clock(conflict.end_time)})"
        )
    if availability.suggested_times:
        console.print(f"   Nearest free times: {', '.join(availability.suggested_times)}")


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    data_file: Annotated[Optional[Path], typer.Option("--data", help="JSON data file for the in-memory store (overrides the config)")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
):
    ctx.obj = CliOptions(config_file=config_file, data_file=data_file, verbose=verbose)


@app.command()
def slots(
    ctx: typer.Context,
    staff_id: Annotated[str, typer.Argument(help="Staff member id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")] = None,
):
    """
    List free start times of a staff member on a date.

    Examples:

        bookingengine slots emp-anna 2024-11-25 --duration 45
    """
    session = _open_session(ctx)
    minutes = duration or session.config.engine.default_service_duration

    labels = _unwrap(asyncio.run(session.orchestrator.generate_time_slots(staff_id, date, minutes)))

    if not labels:
        console.print(f"[yellow]⚠ No free {minutes} minute slots for {staff_id} on {date}.[/yellow]")
        return

    console.print(f"[bold green]✓ {len(labels)} free slot(s) for {staff_id} on {date} ({minutes} min):[/bold green]")
    console.print("  " + "  ".join(labels))


@app.command()
def check(
    ctx: typer.Context,
    staff_id: Annotated[str, typer.Argument(help="Staff member id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")] = None,
):
    """
    Check whether a staff member is free for a window.
    """
    session = _open_session(ctx)
    minutes = duration or session.config.engine.default_service_duration

    availability = _unwrap(
        asyncio.run(session.orchestrator.is_staff_available_at(staff_id, date, start_time, minutes))
    )

    if availability.available:
        console.print(f"[bold green]✓ {staff_id} is available at {start_time} for {minutes} min[/bold green]")
        return

    console.print(f"[yellow]⚠ {staff_id} is not available at {start_time}: {availability.reason}[/yellow]")
    _print_conflict(availability)


@app.command("tenant-slots")
def tenant_slots(
    ctx: typer.Context,
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")] = None,
    tenant: TenantOption = None,
):
    """
    List free start times on the tenant's opening hours, ignoring staff.

    Examples:

        bookingengine tenant-slots 2024-11-25 -d 30 -t studio@example.com
    """
    session = _open_session(ctx)
    tenant_id = _tenant(session, tenant)
    minutes = duration or session.config.engine.default_service_duration

    labels = _unwrap(asyncio.run(session.orchestrator.tenant_time_slots(tenant_id, date, minutes)))

    if not labels:
        console.print(f"[yellow]⚠ No free {minutes} minute slots for {tenant_id} on {date}.[/yellow]")
        return

    console.print(f"[bold green]✓ {len(labels)} free slot(s) for {tenant_id} on {date} ({minutes} min):[/bold green]")
    console.print("  " + "  ".join(labels))


@app.command("tenant-check")
def tenant_check(
    ctx: typer.Context,
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")] = None,
    tenant: TenantOption = None,
):
    """
    Check a window against the tenant's opening hours and all of its bookings.
    """
    session = _open_session(ctx)
    tenant_id = _tenant(session, tenant)
    minutes = duration or session.config.engine.default_service_duration

    availability = _unwrap(
        asyncio.run(session.orchestrator.is_tenant_slot_available(tenant_id, date, start_time, minutes))
    )

    if availability.available:
        console.print(f"[bold green]✓ {start_time} is free for {minutes} min[/bold green]")
        return

    console.print(f"[yellow]⚠ {start_time} is not available: {availability.reason}[/yellow]")
    _print_conflict(availability)


@app.command()
def staff(
    ctx: typer.Context,
    service_id: Annotated[str, typer.Argument(help="Service id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    tenant: TenantOption = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Override the service duration")] = None,
):
    """
    List staff able to perform a service who are free at a given time.
    """
    session = _open_session(ctx)
    tenant_id = _tenant(session, tenant)

    available = _unwrap(
        asyncio.run(
            session.orchestrator.list_available_staff_for_service(
                tenant_id, service_id, date, start_time, duration
            )
        )
    )

    if not available:
        console.print(f"[yellow]⚠ Nobody is free for {service_id} at {date} {start_time}.[/yellow]")
        return

    table = Table(title=f"Available for {service_id} at {date} {start_time}", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Level", style="dim")
    table.add_column("Minutes", justify="right")
    table.add_column("Price", justify="right")

    for row in available:
        table.add_row(row.staff_id, row.name, row.experience_level, str(row.effective_duration), f"{row.price:.2f}")

    console.print()
    console.print(table)
    console.print()


@app.command("staff-slots")
def staff_slots(
    ctx: typer.Context,
    staff_id: Annotated[str, typer.Argument(help="Staff member id")],
    service_id: Annotated[str, typer.Argument(help="Service id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    tenant: TenantOption = None,
):
    """
    List free start times of a staff member for a service, using their own duration.
    """
    session = _open_session(ctx)
    tenant_id = _tenant(session, tenant)

    result = _unwrap(
        asyncio.run(session.orchestrator.staff_slots_for_service(tenant_id, staff_id, service_id, date))
    )

    console.print(
        f"[bold cyan]{result.staff_name}[/bold cyan] - {service_id}: "
        f"{result.effective_duration} min, {result.price:.2f}"
    )
    if result.slots:
        console.print("  " + "  ".join(result.slots))
    else:
        console.print("[yellow]⚠ No free slots on this date.[/yellow]")


@app.command()
def book(
    ctx: typer.Context,
    service_id: Annotated[str, typer.Argument(help="Service id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    client_name: Annotated[str, typer.Option("--client-name", help="Client name")],
    client_phone: Annotated[str, typer.Option("--client-phone", help="Client phone number")],
    client_email: Annotated[str, typer.Option("--client-email", help="Client email")] = "",
    notes: Annotated[str, typer.Option("--notes", help="Free-text notes")] = "",
    staff_id: Annotated[Optional[str], typer.Option("--staff", "-s", help="Staff member id")] = None,
    tenant: TenantOption = None,
):
    """
    Create a pending booking.

    Examples:

        bookingengine book haircut 2024-11-25 09:00 --staff emp-anna --client-name Max --client-phone 0151
    """
    session = _open_session(ctx)
    tenant_id = _tenant(session, tenant)

    try:
        request = BookingRequest.build(
            service_id=service_id,
            date=date,
            start_time=start_time,
            client=ClientInfo(name=client_name, phone=client_phone, email=client_email, notes=notes),
            staff_id=staff_id,
        )
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    booking = _unwrap(asyncio.run(session.orchestrator.create_booking(tenant_id, request)))
    session.persist()
    _print_booking(booking, "Booking created")


def _transition(ctx: typer.Context, booking_id: str, tenant: Optional[str], action: str) -> None:
    session = _open_session(ctx)
    tenant_id = _tenant(session, tenant)
    operation = getattr(session.orchestrator, f"{action}_booking")

    booking = _unwrap(asyncio.run(operation(tenant_id, booking_id)))
    session.persist()
    _print_booking(booking, f"Booking {booking.status.value}")


@app.command()
def confirm(
    ctx: typer.Context,
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    tenant: TenantOption = None,
):
    """Confirm a pending booking."""
    _transition(ctx, booking_id, tenant, "confirm")


@app.command()
def cancel(
    ctx: typer.Context,
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    tenant: TenantOption = None,
):
    """Cancel a pending or confirmed booking."""
    _transition(ctx, booking_id, tenant, "cancel")


@app.command()
def complete(
    ctx: typer.Context,
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    tenant: TenantOption = None,
):
    """Mark a confirmed booking as completed."""
    _transition(ctx, booking_id, tenant, "complete")


@app.command()
def bookings(
    ctx: typer.Context,
    date: Annotated[Optional[str], typer.Argument(help="Date (YYYY-MM-DD); omit to list every date")] = None,
    status: Annotated[Optional[str], typer.Option("--status", help="Only show bookings with this status")] = None,
    tenant: TenantOption = None,
):
    """
    List a tenant's bookings, on one date or across all dates.

    Examples:

        bookingengine bookings --status pending -t studio@example.com
    """
    session = _open_session(ctx)
    tenant_id = _tenant(session, tenant)

    rows = _unwrap(asyncio.run(session.orchestrator.list_bookings(tenant_id, date, status)))

    scope = f"on {date}" if date else "on any date"
    if not rows:
        console.print(f"[yellow]No bookings {scope}.[/yellow]")
        return

    table = Table(title=f"Bookings {scope}", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    if not date:
        table.add_column("Date")
    table.add_column("Time")
    table.add_column("Service")
    table.add_column("Staff")
    table.add_column("Status")

    for booking in rows:
        cells = [booking.id or ""]
        if not date:
            cells.append(booking.date.to_date_string())
        cells += [
            f"{format_clock(booking.start_time)}-{format_clock(booking.end_time)}",
            booking.service_name or booking.service_id,
            booking.staff_name or "-",
            booking.status.value,
        ]
        table.add_row(*cells)

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
