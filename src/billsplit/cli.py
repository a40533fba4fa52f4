"""CLI for BillSplit using Typer."""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .auth import SessionContext
from .clients.backend import BackendClient
from .config import Settings, load_settings
from .db import Database
from .exceptions import BillSplitError, ConfigurationError, NotFoundError
from .ledger import summarize_entries
from .models import BillReport, Group, User
from .money import Money, to_kobo
from .receipt import parse_receipt_payload
from .service import LedgerService
from .settlement import apply_transfers
from .ui import parse_share_spec, prompt_item_shares

app = typer.Typer(
    name="billsplit",
    help="Split receipts between friends and settle up with the fewest transfers",
)
user_app = typer.Typer(help="Manage people")
group_app = typer.Typer(help="Manage groups")
bill_app = typer.Typer(help="Create, split and finalize bills")
account_app = typer.Typer(help="Hosted backend account")

app.add_typer(user_app, name="user")
app.add_typer(group_app, name="group")
app.add_typer(bill_app, name="bill")
app.add_typer(account_app, name="account")

console = Console()

VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose output")


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool) -> Iterator[tuple[Settings, Database, LedgerService]]:
    """Load settings, open the database and report errors the same way everywhere."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield settings, db, LedgerService(settings, db)
    except (BillSplitError, ValueError) as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_money(kobo: int, currency: str = "NGN", use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: (₦85.02)
    Positive amounts have spaces:      ₦85.02
    """
    formatted = Money(abs(kobo), currency).format()
    if kobo < 0:
        return f"([red]{formatted}[/red])" if use_color else f"({formatted})"
    return f" [green]{formatted}[/green] " if use_color else f" {formatted} "


def find_user(db: Database, ref: str) -> User:
    """Find a user by ID or by full name (case-insensitive)."""
    matches = [
        u for u in db.list_users() if u.user_id == ref or u.full_name.lower() == ref.lower()
    ]
    if not matches:
        raise ValueError(f"No user matches '{ref}'")
    if len(matches) > 1:
        raise ValueError(f"'{ref}' matches {len(matches)} users, use the user ID")
    return matches[0]


def find_group(db: Database, ref: str) -> Group:
    """Find a group by ID or by name (case-insensitive)."""
    matches = [
        g for g in db.list_groups() if g.group_id == ref or g.name.lower() == ref.lower()
    ]
    if not matches:
        raise ValueError(f"No group matches '{ref}'")
    if len(matches) > 1:
        raise ValueError(f"'{ref}' matches {len(matches)} groups, use the group ID")
    return matches[0]


def user_names(db: Database) -> dict[str, str]:
    return {u.user_id: u.full_name for u in db.list_users()}


def group_users(db: Database, group_id: str) -> list[User]:
    return [db.get_user(m.user_id) for m in db.get_group_members(group_id)]


# ============================================================================
# Users
# ============================================================================


@user_app.command("add")
def user_add(
    full_name: str = typer.Argument(..., help="Display name"),
    payment_id: str | None = typer.Option(
        None, "--payment-id", help="Payment account reference"
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """Add a person."""
    with open_service(verbose) as (_, db, _service):
        user = db.create_user(full_name, payment_customer_id=payment_id)
        console.print(f"[green]✓ Added {user.full_name}[/green] [dim]({user.user_id})[/dim]")


@user_app.command("list")
def user_list(verbose: bool = VERBOSE_OPTION):
    """List people."""
    with open_service(verbose) as (_, db, _service):
        table = Table(title="People", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        for user in db.list_users():
            table.add_row(user.user_id, user.full_name)
        console.print(table)


# ============================================================================
# Groups
# ============================================================================


@group_app.command("create")
def group_create(
    name: str = typer.Argument(..., help="Group name"),
    creator: str = typer.Option(..., "--creator", help="Creator (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Create a group. The creator becomes its first member."""
    with open_service(verbose) as (_, db, _service):
        group = db.create_group(name, find_user(db, creator).user_id)
        console.print(f"[green]✓ Created group {group.name}[/green] [dim]({group.group_id})[/dim]")


@group_app.command("add-member")
def group_add_member(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    user: str = typer.Argument(..., help="Person (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Add a person to a group."""
    with open_service(verbose) as (_, db, _service):
        found_group = find_group(db, group)
        found_user = find_user(db, user)
        db.add_member(found_group.group_id, found_user.user_id)
        console.print(f"[green]✓ {found_user.full_name} joined {found_group.name}[/green]")


@group_app.command("remove-member")
def group_remove_member(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    user: str = typer.Argument(..., help="Person (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Remove a settled-up person from a group."""
    with open_service(verbose) as (_, db, service):
        found_group = find_group(db, group)
        found_user = find_user(db, user)
        service.remove_member(found_group.group_id, found_user.user_id)
        console.print(f"[green]✓ {found_user.full_name} left {found_group.name}[/green]")


@group_app.command("archive")
def group_archive(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Archive a group. Its ledger is kept."""
    with open_service(verbose) as (_, db, _service):
        archived = db.archive_group(find_group(db, group).group_id)
        console.print(f"[green]✓ Archived {archived.name}[/green]")


@group_app.command("list")
def group_list(
    user: str | None = typer.Option(None, "--user", help="Only groups this person is in"),
    verbose: bool = VERBOSE_OPTION,
):
    """List groups."""
    with open_service(verbose) as (_, db, _service):
        if user:
            groups = db.list_groups_for_user(find_user(db, user).user_id)
        else:
            groups = db.list_groups()

        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Members", justify="right")
        table.add_column("Status")
        for group in groups:
            table.add_row(
                group.group_id,
                group.name,
                str(len(db.get_group_members(group.group_id))),
                "[dim]archived[/dim]" if group.archived else "active",
            )
        console.print(table)


@group_app.command("show")
def group_show(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Show a group's members and ledger."""
    with open_service(verbose) as (settings, db, _service):
        found = find_group(db, group)
        names = user_names(db)
        entries = db.get_ledger_entries(found.group_id)

        console.print(f"\n[bold]{found.name}[/bold]")
        console.print(
            "  Members: " + ", ".join(names[m.user_id] for m in db.get_group_members(found.group_id))
        )

        table = Table(title="Ledger", show_header=True, header_style="bold magenta")
        table.add_column("Date", style="dim")
        table.add_column("Type")
        table.add_column("From", style="cyan")
        table.add_column("To", style="cyan")
        table.add_column("Amount", justify="right")
        table.add_column("Description")
        for entry in entries:
            table.add_row(
                entry.created_at.strftime("%Y-%m-%d %H:%M"),
                entry.entry_type,
                names.get(entry.payer_id, entry.payer_id),
                names.get(entry.recipient_id, entry.recipient_id) if entry.recipient_id else "-",
                format_money(entry.amount, settings.currency),
                entry.description,
            )
        console.print(table)

        totals = summarize_entries(entries)
        console.print("\n[bold]Totals:[/bold]")
        for entry_type, total in totals.items():
            console.print(f"  {entry_type}: {format_money(total, settings.currency)}")


# ============================================================================
# Bills
# ============================================================================


def display_bill_report(report: BillReport, names: dict[str, str], currency: str):
    """Display a bill's items and how each is split."""
    bill = report.bill
    console.print(f"\n[bold]Bill {bill.bill_id}[/bold] [dim]({bill.status})[/dim]")
    console.print(f"  Total: {format_money(bill.total_amount, currency)}")

    table = Table(title="Items", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Item", style="cyan")
    table.add_column("Qty", justify="right")
    table.add_column("Line total", justify="right")
    table.add_column("Split")
    for item_report in report.items:
        item = item_report.item
        if item_report.status == "complete":
            split = ", ".join(
                f"{names.get(user_id, user_id)} {Money(amount, currency)}"
                for user_id, amount in item_report.owed.items()
            )
        elif item_report.status == "unassigned":
            split = "[yellow]⚠️  not split yet[/yellow]"
        else:
            split = (
                f"[red]⚠️  {item_report.assigned_percentage}% assigned "
                f"({item_report.status})[/red]"
            )
        table.add_row(
            item.item_id,
            item.name,
            str(item.quantity),
            format_money(item.line_total, currency),
            split,
        )
    console.print(table)

    if report.items_total != bill.total_amount and report.items:
        console.print(
            f"  [red]✗ Items add up to {Money(report.items_total, currency)}, "
            f"bill total is {Money(bill.total_amount, currency)}[/red]"
        )
    elif report.is_ready:
        console.print("  [green]✓ Every item is split, ready to finalize[/green]")


@bill_app.command("create")
def bill_create(
    total: str = typer.Option(..., "--total", help="Bill total in naira, e.g. 1200.50"),
    creator: str = typer.Option(..., "--creator", help="Creator (name or ID)"),
    group: str | None = typer.Option(None, "--group", help="Group (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Create a bill by hand. Add items with 'bill add-item'."""
    with open_service(verbose) as (settings, db, service):
        group_id = find_group(db, group).group_id if group else None
        bill = service.create_bill(
            creator_id=find_user(db, creator).user_id,
            total_amount=to_kobo(total),
            group_id=group_id,
        )
        console.print(
            f"[green]✓ Created bill {bill.bill_id}[/green] "
            f"for {format_money(bill.total_amount, settings.currency)}"
        )


@bill_app.command("import")
def bill_import(
    receipt_file: Path | None = typer.Argument(
        None, help="JSON file with OCR output ({total, items[]})"
    ),
    image_url: str | None = typer.Option(
        None, "--image-url", help="Run OCR on an uploaded receipt image instead"
    ),
    creator: str = typer.Option(..., "--creator", help="Creator (name or ID)"),
    group: str | None = typer.Option(None, "--group", help="Group (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Create a bill and its items from a scanned receipt."""
    with open_service(verbose) as (settings, db, service):
        if receipt_file is None and image_url is None:
            raise ValueError("Give a receipt file or --image-url")

        if image_url:
            if not settings.backend_configured:
                raise ConfigurationError(
                    "BILLSPLIT_BACKEND_URL and BILLSPLIT_BACKEND_ANON_KEY are required for OCR"
                )
            console.print("\n[bold blue]Processing receipt image...[/bold blue]")
            with BackendClient(
                settings.backend_url,  # type: ignore[arg-type]
                settings.backend_anon_key,  # type: ignore[arg-type]
                timeout=settings.request_timeout,
            ) as client:
                receipt = client.process_receipt(image_url)
        else:
            receipt = parse_receipt_payload(json.loads(receipt_file.read_text()))  # type: ignore[union-attr]

        bill, _items = service.import_receipt(
            creator_id=find_user(db, creator).user_id,
            receipt=receipt,
            group_id=find_group(db, group).group_id if group else None,
            receipt_image_url=image_url,
        )
        display_bill_report(service.bill_report(bill.bill_id), user_names(db), settings.currency)


@bill_app.command("add-item")
def bill_add_item(
    bill_id: str = typer.Argument(..., help="Bill ID"),
    name: str = typer.Argument(..., help="Item name"),
    price: str = typer.Option(..., "--price", help="Unit price in naira"),
    quantity: int = typer.Option(1, "--quantity", "-q", min=1, help="Quantity"),
    verbose: bool = VERBOSE_OPTION,
):
    """Add a line item to a pending bill."""
    with open_service(verbose) as (settings, db, _service):
        item = db.add_bill_item(bill_id, name, to_kobo(price), quantity)
        console.print(
            f"[green]✓ Added {item.name}[/green] [dim]({item.item_id})[/dim] "
            f"{format_money(item.line_total, settings.currency)}"
        )


@bill_app.command("assign")
def bill_assign(
    item_id: str = typer.Argument(..., help="Bill item ID"),
    shares: str = typer.Argument(..., help="e.g. 'Ada:60,Bayo:40' or 'Ada,Bayo'"),
    verbose: bool = VERBOSE_OPTION,
):
    """Split one item between people."""
    with open_service(verbose) as (_, db, service):
        parsed = parse_share_spec(shares, db.list_users())
        service.assign_item(item_id, parsed)
        total = sum(pct for _, pct in parsed)
        if total == 100:
            console.print("[green]✓ Item split[/green]")
        else:
            console.print(
                f"[yellow]⚠️  Saved, but shares add up to {total}%. "
                f"Adjust them to 100% before finalizing.[/yellow]"
            )


@bill_app.command("split")
def bill_split(
    bill_id: str = typer.Argument(..., help="Bill ID"),
    all_items: bool = typer.Option(
        False, "--all", help="Ask about every item, not just unfinished ones"
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """Interactively split a bill's items."""
    with open_service(verbose) as (settings, db, service):
        report = service.bill_report(bill_id)
        bill = report.bill
        people = group_users(db, bill.group_id) if bill.group_id else db.list_users()

        for item_report in report.items:
            if item_report.status == "complete" and not all_items:
                continue
            shares = prompt_item_shares(item_report.item, people, settings.currency)
            if shares:
                service.assign_item(item_report.item.item_id, shares)

        display_bill_report(service.bill_report(bill_id), user_names(db), settings.currency)


@bill_app.command("show")
def bill_show(
    bill_id: str = typer.Argument(..., help="Bill ID"),
    verbose: bool = VERBOSE_OPTION,
):
    """Show how a bill is split."""
    with open_service(verbose) as (settings, db, service):
        report = service.bill_report(bill_id)
        names = user_names(db)
        display_bill_report(report, names, settings.currency)

        if report.is_ready:
            owed = service.resolve_bill(bill_id)
            console.print("\n[bold]Owed:[/bold]")
            for user_id, amount in owed.items():
                console.print(f"  {names.get(user_id, user_id)}: {format_money(amount, settings.currency)}")


@bill_app.command("finalize")
def bill_finalize(
    bill_id: str = typer.Argument(..., help="Bill ID"),
    payer: str = typer.Option(..., "--payer", help="Who paid (name or ID)"),
    description: str | None = typer.Option(None, "--description", "-d"),
    verbose: bool = VERBOSE_OPTION,
):
    """Record a fully split bill in its group's ledger."""
    with open_service(verbose) as (settings, db, service):
        entry = service.finalize_bill(bill_id, find_user(db, payer).user_id, description)
        console.print(
            f"[bold green]✓ Bill recorded:[/bold green] "
            f"{format_money(entry.amount, settings.currency)} paid by {payer}"
        )


# ============================================================================
# Ledger
# ============================================================================


@app.command()
def expense(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    payer: str = typer.Option(..., "--payer", help="Who paid (name or ID)"),
    amount: str = typer.Option(..., "--amount", help="Amount in naira"),
    description: str = typer.Option(..., "--description", "-d"),
    among: str | None = typer.Option(
        None, "--among", help="Comma-separated people (default: whole group)"
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """Record an expense without a receipt, split evenly."""
    with open_service(verbose) as (settings, db, service):
        found = find_group(db, group)
        split_among = (
            [find_user(db, name.strip()).user_id for name in among.split(",") if name.strip()]
            if among
            else None
        )
        entry = service.add_shared_expense(
            found.group_id,
            payer_id=find_user(db, payer).user_id,
            amount=to_kobo(amount),
            description=description,
            split_among=split_among,
        )
        console.print(
            f"[green]✓ Recorded {format_money(entry.amount, settings.currency)} "
            f"split {len(entry.split_among)} ways[/green]"
        )


@app.command()
def balances(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    verbose: bool = VERBOSE_OPTION,
):
    """Show who owes whom in a group."""
    with open_service(verbose) as (settings, db, service):
        found = find_group(db, group)
        names = user_names(db)
        pairwise = service.get_pairwise_balances(found.group_id)
        net = service.get_net_balances(found.group_id)

        if not pairwise:
            console.print(f"\n[green]✓ Everyone in {found.name} is settled up[/green]")
            return

        table = Table(title=f"{found.name}: who owes whom", header_style="bold magenta")
        table.add_column("Owes", style="cyan")
        table.add_column("To", style="cyan")
        table.add_column("Amount", justify="right")
        for (debtor, creditor), amount in pairwise.items():
            table.add_row(names[debtor], names[creditor], format_money(amount, settings.currency))
        console.print(table)

        console.print("\n[bold]Net:[/bold]")
        for user_id, amount in net.items():
            console.print(f"  {names[user_id]}: {format_money(amount, settings.currency)}")


@app.command()
def settle(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    record: bool = typer.Option(
        False, "--record", help="Record the transfers as settlements"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VERBOSE_OPTION,
):
    """Suggest the fewest transfers that settle a group."""
    with open_service(verbose) as (settings, db, service):
        found = find_group(db, group)
        names = user_names(db)
        net = service.get_net_balances(found.group_id)
        transfers = service.suggest_settlements(found.group_id)

        if not transfers:
            console.print(f"\n[green]✓ Everyone in {found.name} is settled up[/green]")
            return

        table = Table(title="Suggested transfers", header_style="bold magenta")
        table.add_column("From", style="cyan")
        table.add_column("To", style="cyan")
        table.add_column("Amount", justify="right")
        for transfer in transfers:
            table.add_row(
                names[transfer.from_user_id],
                names[transfer.to_user_id],
                format_money(transfer.amount, settings.currency),
            )
        console.print(table)

        remaining = apply_transfers(net, transfers)
        if any(remaining.values()):
            console.print("  [red]✗ Transfers do not settle every balance[/red]")
        else:
            console.print(f"  [green]✓ {len(transfers)} transfers settle everyone[/green]")

        if not record:
            return

        if not yes:
            console.print(
                "\n[bold yellow]⚠️  Ready to record these transfers as settled[/bold yellow]"
            )
            confirm = input("Continue? [y/N] ").strip().lower()
            if confirm not in ("y", "yes"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        entries = service.record_settlements(found.group_id, transfers)
        console.print(f"\n[bold green]✓ Recorded {len(entries)} settlements[/bold green]")


@app.command()
def pay(
    group: str = typer.Argument(..., help="Group (name or ID)"),
    payer: str = typer.Option(..., "--from", help="Who paid (name or ID)"),
    recipient: str = typer.Option(..., "--to", help="Who received (name or ID)"),
    amount: str = typer.Option(..., "--amount", help="Amount in naira"),
    description: str = typer.Option("", "--description", "-d"),
    verbose: bool = VERBOSE_OPTION,
):
    """Record a direct payment between two people."""
    with open_service(verbose) as (settings, db, service):
        found = find_group(db, group)
        entry = service.record_payment(
            found.group_id,
            payer_id=find_user(db, payer).user_id,
            recipient_id=find_user(db, recipient).user_id,
            amount=to_kobo(amount),
            description=description,
        )
        console.print(
            f"[green]✓ Recorded payment of {format_money(entry.amount, settings.currency)}[/green]"
        )


# ============================================================================
# Hosted backend account
# ============================================================================


def _backend_session(settings: Settings) -> SessionContext:
    if not settings.backend_configured:
        raise ConfigurationError(
            "BILLSPLIT_BACKEND_URL and BILLSPLIT_BACKEND_ANON_KEY are required"
        )
    client = BackendClient(
        settings.backend_url,  # type: ignore[arg-type]
        settings.backend_anon_key,  # type: ignore[arg-type]
        timeout=settings.request_timeout,
    )
    return SessionContext(client)


def _link_profile(db: Database, profile: User):
    """Make the backend profile available to the local ledger."""
    try:
        db.get_user(profile.user_id)
    except NotFoundError:
        db.create_user(
            profile.full_name,
            user_id=profile.user_id,
            payment_customer_id=profile.payment_customer_id,
        )
        console.print(f"[green]✓ Linked {profile.full_name} to the local ledger[/green]")


@account_app.command("signup")
def account_signup(
    email: str = typer.Argument(...),
    full_name: str = typer.Option(..., "--name", help="Display name"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    verbose: bool = VERBOSE_OPTION,
):
    """Create a hosted account and its profile."""
    with open_service(verbose) as (settings, db, _service):
        context = _backend_session(settings)
        try:
            profile = context.sign_up(email, password, full_name)
            if profile is None:
                console.print("[yellow]Check your inbox to confirm the address, then log in.[/yellow]")
                return
            console.print(f"[green]✓ Signed up as {profile.full_name}[/green]")
            _link_profile(db, profile)
            context.sign_out()
        finally:
            context.client.close()


@account_app.command("login")
def account_login(
    email: str = typer.Argument(...),
    password: str = typer.Option(..., prompt=True, hide_input=True),
    verbose: bool = VERBOSE_OPTION,
):
    """Sign in, show the profile and link it to the local ledger."""
    with open_service(verbose) as (settings, db, _service):
        context = _backend_session(settings)
        try:
            profile = context.sign_in(email, password)
            console.print(f"[green]✓ Signed in as {profile.full_name}[/green] [dim]({profile.user_id})[/dim]")
            _link_profile(db, profile)
            context.sign_out()
        finally:
            context.client.close()


if __name__ == "__main__":
    app()
