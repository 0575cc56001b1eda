"""Parsing of `/keihi` slash command text."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from keihi.errors import ValidationError


SUBCOMMANDS = ('add', 'setup', 'config', 'status', 'list', 'export', 'help')


@dataclass
class Command:
    """A parsed slash command.

    Attributes:
        name: Subcommand; 'add' when the text is empty, the raw word when it
            is not a known subcommand
        args: Remaining whitespace-separated words
    """
    name: str
    args: List[str] = field(default_factory=list)

    @property
    def known(self) -> bool:
        return self.name in SUBCOMMANDS

    def arg(self, index: int) -> Optional[str]:
        return self.args[index] if index < len(self.args) else None


def parse_command(text: Optional[str]) -> Command:
    """Split command text into subcommand and arguments.

    >>> parse_command("add 1500 タクシー代")
    Command(name='add', args=['1500', 'タクシー代'])
    """
    words = (text or '').split()
    if not words:
        return Command('add')
    return Command(words[0].lower(), words[1:])


def parse_add_args(args: List[str], user_id: Optional[str] = None) -> Tuple[int, str]:
    """Read `add <amount> [details...]` arguments.

    A leading yen sign and thousands separators are accepted.

    Returns:
        (amount, details)

    Raises:
        ValidationError: If the amount is not a positive whole number
    """
    if not args:
        raise ValidationError("金額を入力してください。", user_id)

    raw = args[0].lstrip('¥￥').replace(',', '')
    if raw.endswith('円'):
        raw = raw[:-1]
    if not raw.isdigit() or int(raw) <= 0:
        raise ValidationError(f"金額の形式が正しくありません: {args[0]}", user_id)
    return int(raw), ' '.join(args[1:])
