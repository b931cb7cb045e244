from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, load_settings
from .db import SqlArrangementTable, init_db, make_engine
from .editor import SeatingEditor
from .geometry import seat_positions
from .guests import DEFAULT_GUEST_NAMES, read_guest_names, seed_guests
from .layout import find_guest, unassigned_guests
from .log import setup_logging
from .models import ArrangementData, Guest, SeatingError, TableShape
from .notifications import Notification, Severity
from .render import render_text
from .session import EditorSession
from .storage import LocalCache
from .store import ArrangementStore, UnavailableTable


logger = logging.getLogger(__name__)


class _ConsoleNotifier:
    def notify(self, notification: Notification) -> None:
        text = f"{notification.title}: {notification.message}" if notification.message else notification.title
        if notification.severity in (Severity.warning, Severity.error):
            print(f"{notification.severity.value}: {text}", file=sys.stderr)
        else:
            print(text)


def _make_store(db_url: Optional[str], settings: Settings) -> ArrangementStore:
    if not db_url:
        table = UnavailableTable("no database configured (use --db or SEATING_DB_URL)")
    else:
        try:
            engine = make_engine(db_url)
            init_db(engine)
            table = SqlArrangementTable(engine)
        except SQLAlchemyError as e:
            logger.error("Database unavailable: %s", e)
            table = UnavailableTable(str(e))
    return ArrangementStore(table, name=settings.arrangement_name, retention=settings.retention)


def _session(args: argparse.Namespace, *, load: bool = True) -> EditorSession:
    settings: Settings = args.settings
    notifier = _ConsoleNotifier()
    names = read_guest_names(args.guests) if args.guests else DEFAULT_GUEST_NAMES
    editor = SeatingEditor(notifier=notifier, grid_size=settings.grid_size)
    session = EditorSession(
        editor,
        _make_store(args.db or settings.db_url, settings),
        LocalCache(args.file or settings.cache_file),
        notifier=notifier,
        guest_names=names,
    )
    if load:
        session.load()
    return session


def _resolve_guest(data: ArrangementData, ref: str) -> Guest:
    guest = data.guest(ref) or find_guest(data, ref)
    if guest is None:
        raise SeatingError(f"guest not found: {ref!r}")
    return guest


def cmd_init(args: argparse.Namespace) -> int:
    session = _session(args, load=False)
    cache = session.cache
    if cache.exists() and not args.overwrite:
        raise SeatingError(f"arrangement file already exists: {cache.path} (use --overwrite)")
    session.editor.replace_data(ArrangementData(guests=seed_guests(session.guest_names)))
    cache.save(session.editor.data)
    print(f"Initialized arrangement at {cache.path} ({len(session.editor.data.guests)} guests)")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    session = _session(args)
    print(render_text(session.editor.data, name_width=args.width))
    return 0


def cmd_add_table(args: argparse.Namespace) -> int:
    session = _session(args)
    table = session.editor.add_table(
        TableShape(args.shape), table_id=args.id, name=args.name, seat_count=args.seats, x=args.x, y=args.y
    )
    session.save(silent=True)
    print(f"Added {table.name} [{table.id}] with {table.seat_count} seats")
    return 0


def cmd_edit_table(args: argparse.Namespace) -> int:
    session = _session(args)
    table = session.editor.edit_table(
        args.table,
        name=args.name,
        seat_count=args.seats,
        shape=TableShape(args.shape) if args.shape else None,
        width=args.width,
        height=args.height,
        x=args.x,
        y=args.y,
    )
    session.save(silent=True)
    print(f"Updated {table.name} [{table.id}]")
    return 0


def cmd_delete_table(args: argparse.Namespace) -> int:
    session = _session(args)
    session.editor.delete_table(args.table)
    session.save(silent=True)
    return 0


def cmd_assign(args: argparse.Namespace) -> int:
    session = _session(args)
    data = session.editor.data
    guest = _resolve_guest(data, args.guest)
    if data.seat(args.seat) is None:
        raise SeatingError(f"seat not found: {args.seat}")
    if args.versioned:
        result = session.assign(args.seat, guest.id)
        return 0 if result.success else 1
    session.editor.assign(guest.id, args.seat)
    session.save(silent=True)
    return 0


def cmd_unassign(args: argparse.Namespace) -> int:
    session = _session(args)
    if not session.editor.unassign_seat(args.seat):
        print(f"Seat {args.seat} is already empty")
        return 0
    session.save(silent=True)
    print(f"Cleared {args.seat}")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    if not args.yes:
        raise SeatingError("refusing to unassign every guest without --yes")
    session = _session(args)
    session.editor.clear_all(confirmed=True)
    session.save(silent=True)
    return 0


def cmd_guests(args: argparse.Namespace) -> int:
    session = _session(args)
    data = session.editor.data
    query = (args.search or "").strip().lower()
    if args.all:
        guests = [g for g in data.guests if query in g.name.lower()]
    else:
        guests = unassigned_guests(data, query)
    for g in guests:
        seat = data.seat_of(g.id)
        print(f"{g.id}\t{g.name}" + (f"\t{seat.id}" if seat else ""))
    return 0


def cmd_find(args: argparse.Namespace) -> int:
    session = _session(args)
    data = session.editor.data
    guest = find_guest(data, args.name)
    seat = data.seat_of(guest.id) if guest else None
    if guest is None or seat is None:
        print("Not found")
        return 1
    table = data.table(seat.table_id)
    print(f"{guest.name} is at {table.name if table else seat.table_id}, seat {seat.position} [{seat.id}]")
    return 0


def cmd_positions(args: argparse.Namespace) -> int:
    session = _session(args)
    table = session.editor.data.table(args.table)
    if table is None:
        raise SeatingError(f"table not found: {args.table}")
    for p in seat_positions(table):
        print(f"{p.position}\t{table.x + p.x:.1f}\t{table.y + p.y:.1f}\t{p.rotation:.1f}")
    return 0


def cmd_export_csv(args: argparse.Namespace) -> int:
    session = _session(args)
    data = session.editor.data
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["table", "seat", "guest"])
        for table in data.tables:
            for seat in data.seats_for(table.id):
                guest = data.guest(seat.guest_id) if seat.guest_id else None
                if guest is not None:
                    w.writerow([table.name, seat.position, guest.name])
    print(f"Exported assigned seats to {out}")
    return 0


def cmd_save(args: argparse.Namespace) -> int:
    session = _session(args)
    ok = session.force_save() if args.force else session.save()
    return 0 if ok else 1


def cmd_pull(args: argparse.Namespace) -> int:
    session = _session(args, load=False)
    if not session.reload():
        print("No remote arrangement available")
        return 1
    session.cache.save(session.editor.data)
    print(f"Pulled arrangement {session.arrangement_id} (version {session.version}) into {session.cache.path}")
    return 0


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--file", help="Path to the local arrangement JSON (default: SEATING_CACHE_FILE or ./data/...)")
    p.add_argument("--db", help="Database URL for the shared arrangement store (default: SEATING_DB_URL)")
    p.add_argument("--guests", help="Text file with one guest name per line (default: built-in list)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="seating_planner", description="Wedding seating planner (CLI).")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init", help="Create a new arrangement with the guest list")
    _add_common_args(p_init)
    p_init.add_argument("--overwrite", action="store_true", help="Overwrite an existing arrangement file")
    p_init.set_defaults(func=cmd_init)

    p_show = sub.add_parser("show", help="Print tables, seats and guests")
    _add_common_args(p_show)
    p_show.add_argument("--width", type=int, default=24, help="Max guest name width")
    p_show.set_defaults(func=cmd_show)

    p_add = sub.add_parser("add-table", help="Add a table with its seats")
    _add_common_args(p_add)
    p_add.add_argument("--shape", choices=[s.value for s in TableShape], default=TableShape.circle.value)
    p_add.add_argument("--seats", type=int, default=12)
    p_add.add_argument("--name")
    p_add.add_argument("--id", help="Table id (default: generated)")
    p_add.add_argument("--x", type=float, default=100.0)
    p_add.add_argument("--y", type=float, default=100.0)
    p_add.set_defaults(func=cmd_add_table)

    p_edit = sub.add_parser("edit-table", help="Rename, resize, reshape or move a table")
    _add_common_args(p_edit)
    p_edit.add_argument("--table", required=True)
    p_edit.add_argument("--name")
    p_edit.add_argument("--seats", type=int)
    p_edit.add_argument("--shape", choices=[s.value for s in TableShape])
    p_edit.add_argument("--width", type=float)
    p_edit.add_argument("--height", type=float)
    p_edit.add_argument("--x", type=float)
    p_edit.add_argument("--y", type=float)
    p_edit.set_defaults(func=cmd_edit_table)

    p_del = sub.add_parser("delete-table", help="Delete a table and unassign its guests")
    _add_common_args(p_del)
    p_del.add_argument("--table", required=True)
    p_del.set_defaults(func=cmd_delete_table)

    p_assign = sub.add_parser("assign", help="Seat a guest (swaps with an occupant)")
    _add_common_args(p_assign)
    p_assign.add_argument("--guest", required=True, help="Guest id or name")
    p_assign.add_argument("--seat", required=True, help="Seat id, e.g. table-1-seat-0")
    p_assign.add_argument("--versioned", action="store_true", help="Fail on concurrent remote changes")
    p_assign.set_defaults(func=cmd_assign)

    p_unassign = sub.add_parser("unassign", help="Clear one seat")
    _add_common_args(p_unassign)
    p_unassign.add_argument("--seat", required=True)
    p_unassign.set_defaults(func=cmd_unassign)

    p_clear = sub.add_parser("clear", help="Unassign every guest")
    _add_common_args(p_clear)
    p_clear.add_argument("--yes", action="store_true", help="Confirm clearing all assignments")
    p_clear.set_defaults(func=cmd_clear)

    p_guests = sub.add_parser("guests", help="List unassigned guests")
    _add_common_args(p_guests)
    p_guests.add_argument("--search")
    p_guests.add_argument("--all", action="store_true", help="Include seated guests")
    p_guests.set_defaults(func=cmd_guests)

    p_find = sub.add_parser("find", help="Find a guest's seat")
    _add_common_args(p_find)
    p_find.add_argument("--name", required=True)
    p_find.set_defaults(func=cmd_find)

    p_pos = sub.add_parser("positions", help="Print seat coordinates for a table")
    _add_common_args(p_pos)
    p_pos.add_argument("--table", required=True)
    p_pos.set_defaults(func=cmd_positions)

    p_export = sub.add_parser("export-csv", help="Export assigned seats to a CSV file")
    _add_common_args(p_export)
    p_export.add_argument("--output", required=True)
    p_export.set_defaults(func=cmd_export_csv)

    p_save = sub.add_parser("save", help="Push the local arrangement to the shared store")
    _add_common_args(p_save)
    p_save.add_argument("--force", action="store_true", help="Overwrite remote changes (last writer wins)")
    p_save.set_defaults(func=cmd_save)

    p_pull = sub.add_parser("pull", help="Replace the local arrangement with the shared one")
    _add_common_args(p_pull)
    p_pull.set_defaults(func=cmd_pull)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        args.settings = load_settings()
        setup_logging(args.settings.log_level)
        return int(args.func(args))
    except SeatingError as e:
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
