"""Interactive CLI application."""
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from vocab_curator.config import load_settings
from vocab_curator.errors import VocabCuratorError
from vocab_curator.lifecycle import approve, has_ai_content
from vocab_curator.logs import configure_logging
from vocab_curator.models import Record, RecordStatus
from vocab_curator.orchestrator import CLEAR_INPUT, run_explanation_session, run_image_session, show_explanations
from vocab_curator.provider import cancel_on_interrupt
from vocab_curator.records import (
    create_record, delete_record, discard_ai_content, find_by_reading, find_duplicates,
    generate_missing_explanations, pending_records, update_core_fields,
)
from vocab_curator.services import Services, build_services
from vocab_curator.textfmt import format_for_display

logger = logging.getLogger(__name__)
console = Console()

STATUS_COLORS = {
    RecordStatus.PENDING_GENERATION: "yellow",
    RecordStatus.PENDING_APPROVAL: "cyan",
    RecordStatus.APPROVED: "green",
}


def show_welcome():
    console.print(Panel(
        "[bold]Vocab Curator[/bold]\n[dim]AI-assisted vocabulary records[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("add", "Add a record"),
        ("list", "List records"),
        ("edit", "View and edit a record"),
        ("ai", "Manage AI content of a record"),
        ("delete", "Delete a record"),
        ("finalize", "Walk through records awaiting approval"),
        ("batch", "Generate missing explanations"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def ask_optional(label: str, current: Optional[str] = None) -> Optional[str]:
    """Ask for an optional value. Enter keeps ``current``; '-' clears it."""
    answer = (Prompt.ask(label, default=current or "", show_default=bool(current)) or "").strip()
    if answer == CLEAR_INPUT:
        return None
    return answer or current


def status_text(record: Record) -> str:
    color = STATUS_COLORS[record.status]
    return f"[{color}]{record.status.value}[/{color}]"


def print_record_table(records: list) -> None:
    table = Table()
    table.add_column("ID", style="dim")
    table.add_column("Record")
    table.add_column("Status")
    for record in records:
        table.add_row(record.id, record.display_text, status_text(record))
    console.print(table)


def print_record_details(services: Services, record: Record, show_timestamps: bool = True) -> None:
    lines = [
        f"ID: {record.id}",
        f"Record: [bold]{record.display_text}[/bold]",
        f"General context: {record.general_context or 'none'}",
        f"Explanation context: {record.explanation_context or 'none'}",
        f"Image context: {record.image_context or 'none'}",
        f"Note: {record.user_note or 'none'}",
        f"Status: {status_text(record)}",
    ]
    if show_timestamps:
        lines += [
            "",
            f"Created: {format_for_display(record.created_at_utc)}",
            f"Explanations generated: {format_for_display(record.explanation_generated_at_utc)}",
            f"Image generated: {format_for_display(record.image_generated_at_utc)}",
            f"Approved: {format_for_display(record.approved_at_utc)}",
        ]
    image = str(services.assets.final_path(record.image_file)) if record.image_file else "none"
    lines += ["", f"Image: {image}", f"Image prompt: {record.image_prompt or 'none'}"]
    console.print(Panel("\n".join(lines), title="Record", border_style="blue"))
    if record.explanations:
        show_explanations(record.explanations)
    else:
        console.print("[dim]No explanations yet.[/dim]")


def confirm_duplicates(services: Services, reading: str, exclude_id: Optional[str] = None) -> bool:
    duplicates = find_duplicates(services.store, reading, exclude_id)
    if not duplicates:
        return True
    console.print("[yellow]Records with the same reading already exist:[/yellow]")
    print_record_table(duplicates)
    return Prompt.ask("Continue anyway?", choices=["y", "n"], default="n") == "y"


def select_record(services: Services, prompt: str) -> Optional[Record]:
    """Find a record by id or by reading; None when nothing was chosen."""
    text = Prompt.ask(prompt, default="", show_default=False).strip()
    if not text:
        console.print("[dim]Cancelled.[/dim]")
        return None
    record = services.store.get_by_id(text)
    if record:
        return record
    matches = find_by_reading(services.store, text)
    if not matches:
        console.print(f"[red]No record with id or reading '{text}'.[/red]")
        return None
    if len(matches) == 1:
        return matches[0]
    for i, match in enumerate(matches, 1):
        console.print(f"  [cyan]{i}[/cyan]) {match.display_text} ({match.id})")
    choice = Prompt.ask("Select record", choices=[str(i) for i in range(1, len(matches) + 1)])
    return matches[int(choice) - 1]


def cmd_add(services: Services):
    console.print("\n[bold]Add Record[/bold]")
    reading = ""
    while not reading:
        reading = Prompt.ask("Reading ('c' to cancel)", default="", show_default=False).strip()
        if reading.lower() == "c":
            console.print("[dim]Cancelled.[/dim]")
            return
        if not reading:
            console.print("[red]A reading is required.[/red]")
    if not confirm_duplicates(services, reading):
        console.print("[dim]Cancelled.[/dim]")
        return
    record = create_record(
        services, reading,
        expression=ask_optional("Expression (optional)"),
        general_context=ask_optional("General context (optional)"),
        user_note=ask_optional("Note (optional)"),
    )
    console.print(f"[green]Added {record.display_text}[/green] [dim]({record.id})[/dim]")
    ai_content_menu(services, record)


def cmd_list(services: Services):
    choice = Prompt.ask(
        "Show", choices=["all", "pending_generation", "pending_approval", "approved"], default="all",
    )
    status = None if choice == "all" else RecordStatus(choice)
    records = services.store.get_all(status)
    if not records:
        console.print("[yellow]No records to show.[/yellow]")
        return
    print_record_table(records)


def edit_record(services: Services, record: Record) -> None:
    console.print("[dim]Enter a new value, press Enter to keep the current one, or '-' to clear it.[/dim]")
    reading = Prompt.ask("Reading", default=record.reading).strip() or record.reading
    if reading != record.reading and not confirm_duplicates(services, reading, record.id):
        console.print("[dim]Edit cancelled.[/dim]")
        return
    result = update_core_fields(
        services, record, reading,
        expression=ask_optional("Expression", record.expression),
        general_context=ask_optional("General context", record.general_context),
        user_note=ask_optional("Note", record.user_note),
    )
    if result["changed"]:
        console.print("[green]Record updated.[/green]")
    if result["ai_content_cleared"]:
        console.print("[yellow]The record changed, so its AI content was cleared.[/yellow]")


def cmd_edit(services: Services):
    record = select_record(services, "Record id or reading")
    if record is None:
        return
    print_record_details(services, record)
    edit_record(services, record)
    ai_content_menu(services, record)


def cmd_ai(services: Services):
    record = select_record(services, "Record id or reading")
    if record is not None:
        print_record_details(services, record)
        ai_content_menu(services, record)


def cmd_delete(services: Services):
    record = select_record(services, "Record id or reading to delete")
    if record is None:
        return
    if Prompt.ask(f"Really delete '{record.display_text}'?", choices=["y", "n"], default="n") == "y":
        delete_record(services, record)
        console.print("[green]Record deleted.[/green]")
    else:
        console.print("[dim]Cancelled.[/dim]")


def ai_content_menu(services: Services, record: Record) -> None:
    """Generate, approve or clear AI content for one record until the user leaves."""
    while True:
        options = {"explain": "Generate explanations", "image": "Generate an image", "both": "Generate both"}
        if record.status == RecordStatus.PENDING_APPROVAL:
            options["approve"] = "Approve the content"
        if has_ai_content(record):
            options["clear"] = "Delete all AI content"
        options["back"] = "Back"
        console.print(f"\n[bold]AI content[/bold] for {record.display_text} ({status_text(record)})")
        for key, desc in options.items():
            console.print(f"  [cyan]{key:<10}[/cyan] {desc}")
        choice = Prompt.ask(">", choices=list(options), default="back")
        if choice == "back":
            return
        if choice in ("explain", "both"):
            run_explanation_session(services, record)
        if choice in ("image", "both"):
            run_image_session(services, record)
        if choice == "approve":
            approve(record)
            services.store.update(record)
            console.print("[green]Approved.[/green]")
        if choice == "clear":
            discard_ai_content(services, record)
            console.print("[green]AI content deleted.[/green]")


def cmd_finalize(services: Services):
    records = pending_records(services.store)
    if not records:
        console.print("[green]Every record is approved.[/green]")
        return
    console.print(f"\n[bold]{len(records)} record(s) awaiting approval[/bold]")
    index = 0
    while index < len(records):
        record = services.store.get_by_id(records[index].id)
        if record is None or record.status == RecordStatus.APPROVED:
            index += 1
            continue
        print_record_details(services, record, show_timestamps=False)
        choice = Prompt.ask("edit / ai / next / stop", choices=["edit", "ai", "next", "stop"], default="ai")
        if choice == "edit":
            edit_record(services, record)
        elif choice == "ai":
            ai_content_menu(services, record)
        elif choice == "next":
            index += 1
        else:
            return
    console.print("[green]Finished the pending records.[/green]")


def cmd_batch(services: Services):
    console.print("\n[bold]Generate missing explanations[/bold] [dim](Ctrl+C stops after the current record)[/dim]")

    def report(record: Record, ok: bool):
        mark = "[green]done[/green]" if ok else "[red]failed[/red]"
        console.print(f"  {record.display_text}: {mark}")

    with cancel_on_interrupt() as cancel:
        summary = generate_missing_explanations(services, cancel=cancel, on_progress=report)
    if summary["total"] == 0:
        console.print("[green]Every record already has explanations.[/green]")
        return
    if summary["cancelled"]:
        console.print("[yellow]Stopped.[/yellow]")
    console.print(f"Succeeded: {summary['succeeded']}  Failed: {summary['failed']}  Total: {summary['total']}")


COMMANDS = {
    "add": cmd_add,
    "list": cmd_list,
    "edit": cmd_edit,
    "ai": cmd_ai,
    "delete": cmd_delete,
    "finalize": cmd_finalize,
    "batch": cmd_batch,
}


def run(services: Services) -> None:
    show_welcome()
    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="list").strip().lower()
        if choice in ("quit", "exit", "q"):
            console.print("[dim]Bye.[/dim]")
            break
        command = COMMANDS.get(choice)
        if command is None:
            console.print("[red]Unknown command. Try again.[/red]")
            continue
        try:
            command(services)
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except (VocabCuratorError, OSError) as e:
            logger.exception("Command %s failed", choice)
            console.print(f"[red]Error: {e}[/red]")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    settings = load_settings(argv[0] if argv else None)
    configure_logging(settings, console)
    services = build_services(settings)
    services.store.load_all()
    # leftovers from an earlier crashed session
    services.assets.cleanup()
    try:
        run(services)
    finally:
        services.assets.cleanup()


if __name__ == "__main__":
    main()
