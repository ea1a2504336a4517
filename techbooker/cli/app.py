"""
Main CLI application using Typer.
"""

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Annotated

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import TechbookerError
from ..domain.field_editor import format_appointment, format_day_month_year, parse_day_month_year
from ..domain.models import OPERATING_SYSTEMS, BookingRequest
from ..domain.slot_calculator import DisabledReason, weekday_ordinal
from ..adapters.mock_store import InMemoryBookingStore, RecordingSmsSender
from ..adapters.sms_sender import EdgeFunctionSmsSender, SmsSenderProtocol
from ..adapters.supabase_auth import SupabaseAuthenticator
from ..adapters.supabase_store import SupabaseBookingStore
from ..adapters.twilio_sender import TwilioSmsSender
from ..services.admin_service import EDITABLE_FIELDS, SORTABLE_COLUMNS, AdminService
from ..services.booking_service import BookingService, BookingStoreProtocol
from ..settings_store import JsonSettingsStore

app = typer.Typer(
    name="techbooker",
    help="Book technician appointments and manage bookings",
    add_completion=False
)
settings_app = typer.Typer(help="View and change booking settings", add_completion=False)
app.add_typer(settings_app, name="settings")

console = Console()

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

REASON_TEXT = {
    DisabledReason.PAST: "the date is in the past",
    DisabledReason.WEEKDAY: "bookings are closed on this weekday",
    DisabledReason.DATE: "bookings are closed on this date",
    DisabledReason.CAPACITY: "the daily booking limit is reached",
    DisabledReason.FULLY_BOOKED: "no time slots are left",
}

HHMM = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


@dataclass
class AppContext:
    """Lazily built collaborators shared by all commands of one invocation."""
    config_file: Optional[Path]
    mock: bool
    _config: Optional[AppConfig] = None
    _store: Optional[BookingStoreProtocol] = None
    _authenticator: Optional[SupabaseAuthenticator] = None
    _cache: Dict[str, Any] = field(default_factory=dict)

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            config_path = self.config_file or get_default_config_path()
            if self.mock and not config_path.exists():
                self._config = AppConfig.for_mock()
            else:
                self._config = AppConfig.load_from_yaml(config_path)
        return self._config

    @property
    def authenticator(self) -> SupabaseAuthenticator:
        if self._authenticator is None:
            config = self.config
            self._authenticator = SupabaseAuthenticator(
                url=config.supabase.url,
                anon_key=config.supabase.anon_key,
                session_file=config.session_file,
                timeout=config.request_timeout,
            )
        return self._authenticator

    @property
    def store(self) -> BookingStoreProtocol:
        if self._store is None:
            config = self.config
            if self.mock:
                self._store = InMemoryBookingStore.from_seed_file(timezone=config.timezone)
            else:
                self._store = SupabaseBookingStore(
                    url=config.supabase.url,
                    anon_key=config.supabase.anon_key,
                    access_token=self.authenticator.get_access_token(),
                    timeout=config.request_timeout,
                )
        return self._store

    @property
    def settings_store(self) -> JsonSettingsStore:
        if "settings_store" not in self._cache:
            self._cache["settings_store"] = JsonSettingsStore(self.config.settings_file)
        return self._cache["settings_store"]

    def sms_sender(self) -> SmsSenderProtocol:
        config = self.config
        if self.mock:
            return RecordingSmsSender()
        if config.sms.provider == "twilio":
            return TwilioSmsSender(
                account_sid=config.sms.twilio.account_sid,
                auth_token=config.sms.twilio.auth_token,
                phone_number=config.sms.twilio.phone_number,
                timeout=config.sms.timeout_seconds,
            )
        return EdgeFunctionSmsSender(
            url=config.supabase.url,
            anon_key=config.supabase.anon_key,
            function_name=config.sms.function_name,
            timeout=config.sms.timeout_seconds,
        )

    def booking_service(self) -> BookingService:
        if "booking_service" not in self._cache:
            service = BookingService(
                store=self.store,
                sms_sender=self.sms_sender(),
                timezone=self.config.timezone,
                sms_template=self.config.sms.template,
            )
            service.follow(self.settings_store)
            self._cache["booking_service"] = service
        return self._cache["booking_service"]

    def admin_service(self) -> AdminService:
        return AdminService(
            store=self.store,
            timezone=self.config.timezone,
            authenticator=None if self.mock else self.authenticator,
        )


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn expected failures into a red message and exit code 1."""
    try:
        yield
    except (TechbookerError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


def _parse_iso_day(value: str, tz: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        raise typer.BadParameter(f"Expected a date as YYYY-MM-DD, got '{value}'") from e


def _parse_hhmm(value: str) -> time:
    match = HHMM.match(value or "")
    if not match:
        raise typer.BadParameter(f"Expected a time as HH:MM, got '{value}'")
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise typer.BadParameter(f"Time out of range: '{value}'")
    return time(hour, minute)


def _format_slots(slots: List[time]) -> str:
    return ", ".join(slot.strftime("%H:%M") for slot in slots)


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use in-memory demo bookings; nothing is sent or stored remotely.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Technician appointment booking.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
    logger.debug("Starting techbooker (mock=%s, config=%s)", mock, config_file)
    ctx.obj = AppContext(config_file=config_file, mock=mock)


@app.command()
def slots(
    ctx: typer.Context,
    day: Annotated[str, typer.Argument(help="Date as YYYY-MM-DD")],
):
    """
    Show the free appointment times for a date.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        service = context.booking_service()
        selected = _parse_iso_day(day, context.config.timezone)

        reason = service.disabled_reason(selected)
        label = f"{WEEKDAY_NAMES[weekday_ordinal(selected)]}, {format_day_month_year(selected)}"
        if reason is not None:
            console.print(f"[yellow]⚠ {label} cannot be booked: {REASON_TEXT[reason]}.[/yellow]")
            return

        free = service.available_slots(selected)
        console.print(f"[bold green]✓ {len(free)} free time slot(s) on {label}:[/bold green]")
        console.print(f"  {_format_slots(free)}")


@app.command()
def calendar(
    ctx: typer.Context,
    month: Annotated[Optional[str], typer.Option("--month", "-m", help="Month as YYYY-MM. Defaults to the current month.")] = None,
):
    """
    Show a month with bookable and disabled dates.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        tz = context.config.timezone
        service = context.booking_service()

        if month:
            try:
                first = pendulum.from_format(month, "YYYY-MM", tz=tz).date()
            except ValueError as e:
                raise typer.BadParameter(f"Expected a month as YYYY-MM, got '{month}'") from e
        else:
            first = pendulum.today(tz).date().start_of("month")
        last = first.end_of("month")

        disabled = set(service.disabled_days(first, last))
        week_start = service.settings.first_day_of_week
        ordered_days = [(week_start + offset) % 7 for offset in range(7)]

        table = Table(
            title=first.format("MMMM YYYY"),
            show_header=True,
            header_style="bold cyan"
        )
        for ordinal in ordered_days:
            table.add_column(WEEKDAY_NAMES[ordinal][:3], justify="right")

        row: List[str] = [""] * ordered_days.index(weekday_ordinal(first))
        current = first
        while current <= last:
            cell = str(current.day)
            if date(current.year, current.month, current.day) in disabled:
                row.append(f"[dim strike]{cell}[/dim strike]")
            else:
                row.append(f"[bold green]{cell}[/bold green]")
            if len(row) == 7:
                table.add_row(*row)
                row = []
            current = current.add(days=1)
        if row:
            table.add_row(*(row + [""] * (7 - len(row))))

        console.print()
        console.print(table)
        console.print("[dim]Green dates can be booked; struck-through dates cannot.[/dim]\n")


@app.command()
def book(
    ctx: typer.Context,
    first_name: Annotated[str, typer.Option(prompt="First name")],
    last_name: Annotated[str, typer.Option(prompt="Last name")],
    phone: Annotated[str, typer.Option(prompt="Phone")],
    address: Annotated[str, typer.Option(prompt="Address")],
    operating_system: Annotated[str, typer.Option("--os", prompt=f"Operating system ({'/'.join(OPERATING_SYSTEMS)})")],
    day: Annotated[str, typer.Option("--date", prompt="Appointment date (YYYY-MM-DD)")],
    city: Annotated[str, typer.Option(help="City (optional)")] = "",
    comments: Annotated[str, typer.Option(help="Anything the technician should know")] = "",
    slot: Annotated[Optional[str], typer.Option("--time", help="Appointment time as HH:MM")] = None,
):
    """
    Book an appointment.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        tz = context.config.timezone
        service = context.booking_service()
        selected = _parse_iso_day(day, tz)

        reason = service.disabled_reason(selected)
        if reason is not None:
            console.print(f"[bold red]Error:[/bold red] {format_day_month_year(selected)} cannot be booked: {REASON_TEXT[reason]}.")
            raise typer.Exit(1)

        if slot is None:
            free = service.available_slots(selected)
            console.print(f"Free times: {_format_slots(free)}")
            slot = typer.prompt("Appointment time (HH:MM)")
        chosen = _parse_hhmm(slot)

        request = BookingRequest(
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            address=address,
            operating_system=operating_system,
            appointment_date=pendulum.datetime(
                selected.year, selected.month, selected.day, chosen.hour, chosen.minute, tz=tz
            ),
            city=city or None,
            comments=comments,
        )
        outcome = service.create_booking(request)

        console.print(Panel.fit(
            f"[bold green]✓ Booking created![/bold green]\n\n"
            f"[bold]Booking number:[/bold] {outcome.booking.display_number}\n"
            f"[bold]Appointment:[/bold] {format_appointment(outcome.booking.appointment_date, tz)}",
            title="✓ Booking"
        ))
        if outcome.sms_warning:
            console.print(f"[yellow]⚠ The confirmation SMS could not be sent: {escape(outcome.sms_warning)}[/yellow]")
        elif outcome.sms_sent:
            console.print("[green]✓ Confirmation SMS sent.[/green]")


@app.command()
def bookings(
    ctx: typer.Context,
    sort: Annotated[str, typer.Option("--sort", "-s", help=f"Column: {', '.join(SORTABLE_COLUMNS)}")] = "appointment_date",
    desc: Annotated[bool, typer.Option("--desc", help="Sort descending.")] = False,
):
    """
    List bookings (staff).
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        tz = context.config.timezone
        rows = context.admin_service().list_bookings(sort_by=sort, descending=desc)

        if not rows:
            console.print("[yellow]No bookings found.[/yellow]")
            return

        table = Table(title="Bookings", show_header=True, header_style="bold cyan")
        table.add_column("#", style="dim")
        table.add_column("Number", style="bold yellow")
        table.add_column("Done")
        table.add_column("Appointment")
        table.add_column("Name")
        table.add_column("Phone")
        table.add_column("City")
        table.add_column("Address")
        table.add_column("OS")
        table.add_column("Comments")
        table.add_column("Notes")

        for index, booking in enumerate(rows, 1):
            table.add_row(
                str(index),
                booking.display_number,
                "✓" if booking.completed else "✗",
                format_appointment(booking.appointment_date, tz),
                escape(booking.full_name),
                escape(booking.phone),
                escape(booking.city or ""),
                escape(booking.address),
                booking.operating_system,
                escape(booking.comments),
                escape(booking.technician_notes),
            )

        console.print()
        console.print(table)
        console.print()


@app.command()
def complete(
    ctx: typer.Context,
    booking_ref: Annotated[str, typer.Argument(help="Booking number, id or id prefix")],
    undo: Annotated[bool, typer.Option("--undo", help="Mark as not completed.")] = False,
):
    """
    Mark a booking as completed (staff).
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        admin = context.admin_service()
        booking = admin.find_booking(booking_ref)
        admin.set_completed(booking.id, not undo)
        state = "open" if undo else "completed"
        console.print(f"[green]✓ Booking {booking.display_number} marked {state}.[/green]")


@app.command()
def delete(
    ctx: typer.Context,
    booking_ref: Annotated[str, typer.Argument(help="Booking number, id or id prefix")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
):
    """
    Delete a booking (staff). The row is kept with a deletion timestamp.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        admin = context.admin_service()
        booking = admin.find_booking(booking_ref)
        if not yes and not typer.confirm(f"Delete booking {booking.display_number}?"):
            console.print("Cancelled.")
            return
        admin.soft_delete(booking.id)
        console.print(f"[green]✓ Booking {booking.display_number} deleted.[/green]")


@app.command()
def edit(
    ctx: typer.Context,
    booking_ref: Annotated[str, typer.Argument(help="Booking number, id or id prefix")],
    field_name: Annotated[str, typer.Argument(metavar="FIELD", help=f"One of: {', '.join(EDITABLE_FIELDS)}")],
    value: Annotated[str, typer.Argument(help="New value; dates as dd/mm/yyyy HH:mm")],
):
    """
    Change one field of a booking (staff).
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        admin = context.admin_service()
        booking = admin.find_booking(booking_ref)
        updated = admin.edit_field(booking, field_name, value)
        if updated is None:
            console.print(f"[yellow]⚠ '{escape(value)}' is not a valid {field_name}; the value was left unchanged.[/yellow]")
            raise typer.Exit(1)
        console.print(f"[green]✓ {field_name} updated for booking {updated.display_number}.[/green]")


@app.command()
def login(
    ctx: typer.Context,
    email: Annotated[str, typer.Option(prompt="Email")],
    password: Annotated[str, typer.Option(prompt="Password", hide_input=True)],
):
    """
    Sign in as staff.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        context.admin_service().sign_in(email, password)
        warning = context.authenticator.insecure_storage_warning
        if warning:
            console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")
        console.print(f"[bold green]✓ Signed in as {email}.[/bold green]")


@app.command()
def logout(ctx: typer.Context):
    """
    Sign out and forget the cached session.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        context.admin_service().sign_out()
        console.print("[green]✓ Signed out.[/green]")


@settings_app.command("show")
def settings_show(ctx: typer.Context):
    """
    Show the current booking settings.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        current = context.settings_store.load()

        table = Table(title="Booking settings", show_header=False)
        table.add_column("Setting", style="bold cyan")
        table.add_column("Value")
        table.add_row("First day of week", WEEKDAY_NAMES[current.first_day_of_week])
        table.add_row("Disabled weekdays", ", ".join(WEEKDAY_NAMES[d] for d in sorted(current.disabled_weekdays)) or "-")
        table.add_row("Disabled dates", ", ".join(format_day_month_year(d) for d in sorted(current.disabled_dates)) or "-")
        table.add_row("Minimum interval", f"{current.min_interval_hours} h")
        table.add_row("Work hours", f"{current.work_start_time:%H:%M} - {current.work_end_time:%H:%M}")
        table.add_row("Max bookings per day", str(current.max_bookings_per_day) if current.max_bookings_per_day else "no limit")
        table.add_row("Send SMS", "yes" if current.send_sms else "no")

        console.print()
        console.print(table)
        console.print()


@settings_app.command("set")
def settings_set(
    ctx: typer.Context,
    min_interval: Annotated[Optional[int], typer.Option("--min-interval", help="Minimum hours between bookings (1-24)")] = None,
    work_start: Annotated[Optional[str], typer.Option("--work-start", help="First slot, HH:MM")] = None,
    work_end: Annotated[Optional[str], typer.Option("--work-end", help="Last slot, HH:MM")] = None,
    max_per_day: Annotated[Optional[int], typer.Option("--max-per-day", help="Daily booking limit; 0 removes the limit")] = None,
    sms: Annotated[Optional[bool], typer.Option("--sms/--no-sms", help="Send a confirmation SMS")] = None,
    first_day: Annotated[Optional[str], typer.Option("--first-day", help="Calendar week start: sunday or monday")] = None,
):
    """
    Change booking settings.
    """
    context: AppContext = ctx.obj
    changes: Dict[str, Any] = {}
    if min_interval is not None:
        changes["min_interval_hours"] = min_interval
    if work_start is not None:
        changes["work_start_time"] = _parse_hhmm(work_start)
    if work_end is not None:
        changes["work_end_time"] = _parse_hhmm(work_end)
    if max_per_day is not None:
        changes["max_bookings_per_day"] = max_per_day or None
    if sms is not None:
        changes["send_sms"] = sms
    if first_day is not None:
        if first_day.lower() not in ("sunday", "monday"):
            raise typer.BadParameter("--first-day must be sunday or monday")
        changes["first_day_of_week"] = 0 if first_day.lower() == "sunday" else 1

    if not changes:
        console.print("[yellow]Nothing to change.[/yellow]")
        return

    with _reported_errors():
        context.settings_store.update(**changes)
        console.print("[green]✓ Settings saved.[/green]")


@settings_app.command("disable-weekday")
def settings_disable_weekday(
    ctx: typer.Context,
    weekday: Annotated[int, typer.Argument(min=0, max=6, help="0=Sunday .. 6=Saturday")],
):
    """
    Close bookings on a weekday.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        current = context.settings_store.load()
        context.settings_store.update(disabled_weekdays=current.disabled_weekdays + [weekday])
        console.print(f"[green]✓ {WEEKDAY_NAMES[weekday]} disabled.[/green]")


@settings_app.command("enable-weekday")
def settings_enable_weekday(
    ctx: typer.Context,
    weekday: Annotated[int, typer.Argument(min=0, max=6, help="0=Sunday .. 6=Saturday")],
):
    """
    Reopen bookings on a weekday.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        current = context.settings_store.load()
        context.settings_store.update(
            disabled_weekdays=[d for d in current.disabled_weekdays if d != weekday]
        )
        console.print(f"[green]✓ {WEEKDAY_NAMES[weekday]} enabled.[/green]")


@settings_app.command("disable-date")
def settings_disable_date(
    ctx: typer.Context,
    day: Annotated[str, typer.Argument(help="Date as dd/mm/yyyy")],
):
    """
    Close bookings on a specific date.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        parsed = parse_day_month_year(day)
        current = context.settings_store.load()
        context.settings_store.update(disabled_dates=current.disabled_dates + [parsed])
        console.print(f"[green]✓ {format_day_month_year(parsed)} disabled.[/green]")


@settings_app.command("enable-date")
def settings_enable_date(
    ctx: typer.Context,
    day: Annotated[str, typer.Argument(help="Date as dd/mm/yyyy")],
):
    """
    Reopen bookings on a specific date.
    """
    context: AppContext = ctx.obj
    with _reported_errors():
        parsed = parse_day_month_year(day)
        current = context.settings_store.load()
        target = (parsed.year, parsed.month, parsed.day)
        context.settings_store.update(
            disabled_dates=[d for d in current.disabled_dates if (d.year, d.month, d.day) != target]
        )
        console.print(f"[green]✓ {format_day_month_year(parsed)} enabled.[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]techbooker[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
