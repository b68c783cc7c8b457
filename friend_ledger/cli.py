'''
To Run:
python -m friend_ledger.cli balance Alice
python -m friend_ledger.cli friends --sort balance
'''
import click
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import List

from friend_ledger import config, ledger_io, migrate, store as kv
from friend_ledger.allocator import BillValidationError, to_money, validate_bill
from friend_ledger.bills import BILL_SORTS, PERIODS, filter_bills, search_bills, sort_bills
from friend_ledger.datatypes import Bill, Direction, Friend, FriendDetail, Settlement, SplitType
from friend_ledger.friends import (
    FILTERS, SORTS, FriendHasBalanceError, balance_text, currency_symbol, ensure_removable,
    filter_friends, friend_balances, search_friends, sort_friends, summary_stats,
)
from friend_ledger.reconcile import BalanceCache, pair_history
from friend_ledger.records import parse_timestamp

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


class Context:
    """Shared state for subcommands"""

    def __init__(self, store, user, currency, cfg):
        self.store = store
        self.user = user
        self.currency = currency
        self.config = cfg
        self.cache = BalanceCache(config.cache_size(cfg))

    def everyone(self) -> List[str]:
        names = {self.user}
        names.update(f.name for f in kv.load_friends(self.store))
        for bill in kv.load_bills(self.store):
            names.add(bill.payer)
            names.update(bill.split_with)
        names.discard('')
        return sorted(names)


def format_friend_detail(detail: FriendDetail, current_user: str) -> str:
    """
    Format one friend's balances in a plain-text report.
    """
    symbol = currency_symbol(detail.currency) or '$'
    overview = detail.overview
    net = overview.net
    lines = []
    lines.append(f"=== {detail.friend.upper()} ===")
    lines.append("")

    if detail.friend != current_user:
        if net > 0:
            lines.append(f"Owes you {symbol}{net:.2f}")
        elif net < 0:
            lines.append(f"You owe {symbol}{abs(net):.2f}")
        else:
            lines.append("Settled up")
        lines.append("")

    lines.append("Balance Overview")
    lines.append(f"  You owe:        {symbol}{overview.you_owe_friend:.2f}")
    lines.append(f"  Owes you:       {symbol}{overview.friend_owes_you:.2f}")
    sign = '+' if net > 0 else ''
    lines.append(f"  Net Balance:    {sign}{symbol}{net:.2f}")

    others = detail.others
    if others.friend_owes_others > 0 or others.others_owe_friend > 0:
        lines.append("")
        lines.append(f"{detail.friend}'s Other Balances")
        if others.friend_owes_others > 0:
            lines.append(f"  Owes others:    {symbol}{others.friend_owes_others:.2f}")
        if others.others_owe_friend > 0:
            lines.append(f"  Others owe:     {symbol}{others.others_owe_friend:.2f}")
        for person, amount in sorted(others.breakdown.items()):
            if amount > 0:
                lines.append(f"    {person} owes {detail.friend} {symbol}{amount:.2f}")
            else:
                lines.append(f"    {detail.friend} owes {person} {symbol}{abs(amount):.2f}")

    return "\n".join(lines)


@click.group()
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help='Path to a ledger config YAML file')
@click.option('--data-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Directory of the JSON store (overrides the config)')
@click.option('--user', default=None, help='Your profile name (overrides the config)')
@click.pass_context
def main(ctx, config_path, data_dir, user):
    """Split bills with friends and keep track of who owes whom."""
    cfg = config.load_config(config_path)
    store = kv.JsonFileStore(data_dir or config.data_dir(cfg))
    current_user = (user or '').strip() or config.profile_name(cfg)
    ctx.obj = Context(store, current_user, config.default_currency(cfg), cfg)


@main.command()
@click.argument('friend')
@click.pass_obj
def balance(obj: Context, friend):
    """Show balances with FRIEND (use your own name for your profile)."""
    bills = kv.load_bills(obj.store)
    book = kv.load_settlement_book(obj.store, obj.everyone())
    detail = obj.cache.friend_detail(bills, book, obj.user, friend, obj.currency)
    click.echo(format_friend_detail(detail, obj.user))


@main.command()
@click.option('--filter', 'filter_by', type=click.Choice(FILTERS), default='all')
@click.option('--sort', 'sort_by', type=click.Choice(SORTS), default='name')
@click.option('--search', default='', help='Match on name or email')
@click.pass_obj
def friends(obj: Context, filter_by, sort_by, search):
    """List friends with their balances."""
    roster = kv.load_friends(obj.store)
    bills = kv.load_bills(obj.store)
    book = kv.load_settlement_book(obj.store, obj.everyone())
    balances = friend_balances(bills, book, obj.user, roster)

    shown = search_friends(roster, search)
    shown = filter_friends(shown, balances, filter_by,
                           tolerance=config.settled_tolerance(obj.config),
                           high_balance=config.high_balance_threshold(obj.config),
                           recent_days=config.recent_days(obj.config))
    shown = sort_friends(shown, balances, sort_by)

    stats = summary_stats(roster, balances)
    click.echo(f"Total Friends: {stats['total_friends']}  "
               f"(+{stats['total_owed']:.2f} / -{stats['total_owe']:.2f})")
    symbol = currency_symbol(obj.currency) or '$'
    for friend in shown:
        click.echo(f"{friend.emoji} {friend.name}: {balance_text(balances.get(friend.name, Decimal('0')), friend.name, symbol)}")
    if not shown:
        click.echo("No friends match")


@main.command('add-friend')
@click.argument('name')
@click.option('--email', default=None)
@click.option('--emoji', default='👤')
@click.pass_obj
def add_friend(obj: Context, name, email, emoji):
    """Add NAME to your friends list."""
    name = name.strip()
    roster = kv.load_friends(obj.store)
    if any(f.name.lower() == name.lower() for f in roster):
        raise click.ClickException(f"{name} is already in your friends list")
    roster.append(Friend(name=name, email=email, emoji=emoji,
                         last_activity=datetime.now(timezone.utc).replace(tzinfo=None)))
    kv.save_friends(obj.store, roster)
    click.echo(f"✔ Added {name}")


@main.command('remove-friend')
@click.argument('name')
@click.pass_obj
def remove_friend(obj: Context, name):
    """Remove NAME, refusing while a balance is outstanding."""
    roster = kv.load_friends(obj.store)
    bills = kv.load_bills(obj.store)
    book = kv.load_settlement_book(obj.store, obj.everyone())
    balances = friend_balances(bills, book, obj.user, roster)
    try:
        ensure_removable(name, balances, config.settled_tolerance(obj.config))
    except FriendHasBalanceError as e:
        raise click.ClickException(str(e))
    kv.save_friends(obj.store, [f for f in roster if f.name != name])
    click.echo(f"✔ Removed {name}")


def _parse_shares(shares) -> dict:
    out = {}
    for share in shares:
        if '=' not in share:
            raise click.BadParameter(f"expected NAME=VALUE, got {share!r}", param_hint='--share')
        person, value = share.split('=', 1)
        out[person.strip()] = value.strip()
    return out


@main.command('add-bill')
@click.option('--name', required=True)
@click.option('--amount', required=True)
@click.option('--payer', default=None, help='Who paid (defaults to you)')
@click.option('--split', 'split_with', multiple=True, required=True, help='Participant, repeatable')
@click.option('--split-type', type=click.Choice([t.value for t in SplitType]), default='equal')
@click.option('--share', 'shares', multiple=True, help='NAME=VALUE for exact or percentage splits')
@click.option('--currency', default=None)
@click.option('--date', 'when', default=None, help='ISO date, defaults to now')
@click.option('--note', default='')
@click.pass_obj
def add_bill(obj: Context, name, amount, payer, split_with, split_type, shares, currency, when, note):
    """Record a shared expense."""
    payer = payer or obj.user
    bill = Bill(
        id=uuid.uuid4().hex,
        name=name.strip(),
        amount=to_money(amount),
        payer=payer,
        split_with=tuple(split_with),
        split_type=SplitType.parse(split_type),
        split_amounts={p: to_money(v) for p, v in _parse_shares(shares).items()},
        date=parse_timestamp(when) if when else datetime.now(timezone.utc).replace(tzinfo=None),
        currency=currency or obj.currency,
        note=note.strip(),
    )
    try:
        validate_bill(bill)
    except BillValidationError as e:
        raise click.ClickException(str(e))
    kv.add_bill(obj.store, bill)
    click.echo(f"✔ {bill.name} → {bill.amount:.2f} {bill.currency} split {len(bill.split_with)} ways")


@main.command()
@click.argument('friend')
@click.argument('amount')
@click.option('--paid-by', type=click.Choice(['me', 'friend']), default='me',
              help='Who made the payment')
@click.option('--note', default='', help='Payment method')
@click.option('--date', 'when', default=None)
@click.pass_obj
def settle(obj: Context, friend, amount, paid_by, note, when):
    """Record a payment between you and FRIEND."""
    money = to_money(amount)
    if money is None or money <= 0:
        raise click.ClickException("Settlement amount must be greater than 0")
    if friend == obj.user:
        raise click.ClickException("You can't settle up with yourself")
    by_me = paid_by == 'me'
    settlement = Settlement(
        id=uuid.uuid4().hex,
        amount=money,
        date=parse_timestamp(when) if when else datetime.now(timezone.utc).replace(tzinfo=None),
        payer_name=obj.user if by_me else friend,
        receiver_name=friend if by_me else obj.user,
        direction=Direction.USER_TO_FRIEND if by_me else Direction.FRIEND_TO_USER,
        note=note,
    )
    kv.append_settlement(obj.store, obj.user, friend, settlement)
    click.echo(f"💰 Recorded {money:.2f} from {settlement.payer_name} to {settlement.receiver_name}")


@main.command()
@click.argument('friend')
@click.pass_obj
def history(obj: Context, friend):
    """Replay the settlements with FRIEND in date order."""
    bills = kv.load_bills(obj.store)
    book = kv.load_settlement_book(obj.store, [obj.user, friend])
    opening, steps = pair_history(bills, book, obj.user, friend)
    click.echo(f"Opening balance from bills: {opening:+.2f}")
    for step in steps:
        s = step.settlement
        flag = '  (direction flipped)' if step.flipped else ''
        click.echo(f"{s.date:%Y-%m-%d} {s.payer_name} → {s.receiver_name or '?'} "
                   f"{s.amount:.2f}: {step.net_before:+.2f} → {step.net_after:+.2f}{flag}")
    if not steps:
        click.echo("No settlements apply")


@main.command('migrate')
@click.pass_obj
def migrate_cmd(obj: Context):
    """Backfill directions on legacy settlement records."""
    count = migrate.migrate_store(obj.store, obj.user, obj.everyone())
    click.echo(f"✔ Backfilled {count} settlement record(s)")


@main.command('import-bills')
@click.argument('csv_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_bills(obj: Context, csv_path):
    """Append bills from a CSV export."""
    imported = ledger_io.read_bills(csv_path)
    existing = kv.load_bills(obj.store)
    known = {b.id for b in existing if b.id}
    new = [b for b in imported if not b.id or b.id not in known]
    kv.save_bills(obj.store, existing + new)
    click.echo(f'✔ {csv_path.name} → {len(new)} bills appended ({len(imported) - len(new)} already present)')


@main.command('export-bills')
@click.argument('csv_path', type=click.Path(dir_okay=False, path_type=Path))
@click.pass_obj
def export_bills(obj: Context, csv_path):
    """Write all bills to a CSV file."""
    bills = kv.load_bills(obj.store)
    ledger_io.write_bills(csv_path, bills)
    click.echo(f'✔ Wrote {len(bills)} bills to {csv_path}')


@main.command('bills')
@click.option('--search', default='', help='Match on name, payer, note, amount or participant')
@click.option('--period', type=click.Choice(PERIODS), default='all')
@click.option('--from', 'start', default=None, help='Earliest date to show')
@click.option('--to', 'end', default=None, help='Latest date to show')
@click.option('--sort', 'sort_by', type=click.Choice(BILL_SORTS), default='date')
@click.pass_obj
def list_bills(obj: Context, search, period, start, end, sort_by):
    """List recorded bills, newest first."""
    shown = search_bills(kv.load_bills(obj.store), search)
    shown = filter_bills(shown, period,
                         start=parse_timestamp(start) if start else None,
                         end=parse_timestamp(end) if end else None)
    shown = sort_bills(shown, sort_by)
    for bill in shown:
        amount = '?' if bill.amount is None else f"{bill.amount:.2f}"
        click.echo(f"{bill.date:%Y-%m-%d} [{bill.id or '-'}] {bill.name or '(unnamed)'}: "
                   f"{amount} {bill.currency} paid by {bill.payer}, split {len(bill.split_with)} ways")
    if not shown:
        click.echo("No bills match")


@main.command('delete-bill')
@click.argument('bill_id')
@click.pass_obj
def delete_bill(obj: Context, bill_id):
    """Delete the bill with BILL_ID."""
    try:
        bill = kv.delete_bill(obj.store, bill_id)
    except kv.BillNotFoundError:
        raise click.ClickException(f"No bill with id {bill_id}")
    click.echo(f"🗑 Deleted {bill.name or bill.id}")


@main.command('duplicate-bill')
@click.argument('bill_id')
@click.pass_obj
def duplicate_bill(obj: Context, bill_id):
    """Record a copy of the bill with BILL_ID, dated now."""
    try:
        copy = kv.duplicate_bill(obj.store, bill_id, uuid.uuid4().hex,
                                 datetime.now(timezone.utc).replace(tzinfo=None))
    except kv.BillNotFoundError:
        raise click.ClickException(f"No bill with id {bill_id}")
    except BillValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"📋 {copy.name} [{copy.id}]")


@main.command('import-settlements')
@click.argument('friend')
@click.argument('csv_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_settlements(obj: Context, friend, csv_path):
    """Append settlements with FRIEND from a CSV export."""
    imported = ledger_io.read_settlements(csv_path)
    existing = kv.load_settlements(obj.store, obj.user, friend)
    known = {s.id for s in existing if s.id}
    new = [s for s in imported if not s.id or s.id not in known]
    kv.save_settlements(obj.store, obj.user, friend, existing + new)
    click.echo(f'✔ {csv_path.name} → {len(new)} settlements appended ({len(imported) - len(new)} already present)')


@main.command('export-settlements')
@click.argument('friend')
@click.argument('csv_path', type=click.Path(dir_okay=False, path_type=Path))
@click.pass_obj
def export_settlements(obj: Context, friend, csv_path):
    """Write the settlement history with FRIEND to a CSV file."""
    settlements = kv.load_settlements(obj.store, obj.user, friend)
    ledger_io.write_settlements(csv_path, settlements)
    click.echo(f'✔ Wrote {len(settlements)} settlements to {csv_path}')


if __name__ == '__main__':
    main()
