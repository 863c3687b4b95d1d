"""Readers for card checklists and reference catalog exports.

Both handle UTF-16LE (with BOM) and UTF-8 files and normalize whitespace
in every cell.
"""

import csv
import io
import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Callable, Optional, TypeVar

from cardmatch import (
    CardSet,
    Color,
    ExistingCard,
    Player,
    PlayerAlias,
    PlayerTeam,
    ProvisionalCard,
    Series,
    Team,
)
from cardmatch.catalog import InMemoryCatalog

log = logging.getLogger(__name__)

T = TypeVar('T')

# Matches any sequence of whitespace (including Unicode whitespace like U+2006)
_WHITESPACE_RE = re.compile(r'\s+')
_PARENS_RE = re.compile(r'[()]')
_ID_LIST_RE = re.compile(r'[\s|,;]+')

# Checklist columns: card number, player(s), team(s), RC indicator, notes
HEADER_LABELS = frozenset({'#', 'no', 'nr', 'number', 'card', 'card #', 'card no', 'card number'})
_TRUE_VALUES = frozenset({'1', 'true', 'yes', 'y', 'x'})


def detect_encoding(path: Path) -> str:
    """Detect file encoding by checking for BOM bytes.

    Args:
        path: Path to the file.

    Returns:
        Encoding string suitable for open().
    """
    with open(path, 'rb') as f:
        bom = f.read(2)
    if bom == b'\xff\xfe':
        return 'utf-16-le'
    return 'utf-8-sig'


def normalize_whitespace(value: Optional[str]) -> str:
    """Collapse whitespace runs into a single space and strip the value."""
    if value is None:
        return ''
    return _WHITESPACE_RE.sub(' ', str(value)).strip()


def detect_delimiter(header_line: str) -> str:
    """Pick the delimiter of a delimited text file from its first line."""
    if '\t' in header_line:
        return '\t'
    if ';' in header_line and ',' not in header_line:
        return ';'
    return ','


def _read_text(path: Path) -> str:
    with open(path, 'r', encoding=detect_encoding(path)) as f:
        content = f.read()
    # Strip BOM if present
    return content.lstrip('\ufeff')


def detect_rookie(indicator: str) -> bool:
    """Interpret an RC column value ('RC', 'Rookie', 'yes', 'true', '1')."""
    value = normalize_whitespace(indicator).lower()
    if not value:
        return False
    return 'rc' in value or 'rookie' in value or value in ('yes', 'true', '1')


def _cell(row: Sequence[str], i: int) -> str:
    return normalize_whitespace(row[i]) if i < len(row) else ''


def _is_header(row: Sequence[str]) -> bool:
    return _cell(row, 0).lower().rstrip('.') in HEADER_LABELS


def parse_rows(rows: Iterable[Sequence[str]]) -> list[ProvisionalCard]:
    """Turn checklist rows into provisional cards.

    Columns are positional: card number, player name(s), team name(s),
    RC indicator, notes. Rows without a card number are skipped (blank
    trailing rows are common in spreadsheets), as is a leading header row.
    Parentheses are removed from notes.

    Args:
        rows: Rows as lists of cell values, in file order.

    Returns:
        Provisional cards in file order, numbered from 1.
    """
    cards: list[ProvisionalCard] = []
    for row_num, row in enumerate(rows, start=1):
        if not row or not _cell(row, 0):
            continue
        if not cards and row_num == 1 and _is_header(row):
            log.debug("Kopfzeile uebersprungen: %s", list(row))
            continue

        rc_indicator = _cell(row, 3)
        cards.append(ProvisionalCard(
            card_number=_cell(row, 0),
            player_names=_cell(row, 1),
            team_names=_cell(row, 2),
            rc_indicator=rc_indicator,
            is_rookie=detect_rookie(rc_indicator),
            notes=_PARENS_RE.sub('', _cell(row, 4)).strip(),
            sort_order=len(cards) + 1,
        ))
    return cards


def parse_pasted_data(text: str) -> list[ProvisionalCard]:
    """Parse a tab-separated table pasted from a spreadsheet.

    Raises:
        ValueError: If the text is empty.
    """
    if not text or not text.strip():
        raise ValueError("Keine Daten zum Einlesen vorhanden.")
    rows = [line.split('\t') for line in text.strip().splitlines()]
    cards = parse_rows(rows)
    log.info("%d Karten aus eingefuegten Daten gelesen", len(cards))
    return cards


def read_card_rows(path: str | Path) -> list[ProvisionalCard]:
    """Read a checklist file (tab-, semicolon- or comma-separated).

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is empty.
    """
    path = Path(path)
    content = _read_text(path)
    if not content.strip():
        raise ValueError(f"Datei {path} ist leer.")

    delimiter = detect_delimiter(content.splitlines()[0])
    cards = parse_rows(csv.reader(io.StringIO(content), delimiter=delimiter))
    log.info("%d Karten gelesen aus %s", len(cards), path)
    return cards


def _read_table(path: Path, required_cols: set[str]) -> list[dict[str, str]]:
    """Read a delimited file with header into dicts of normalized cells.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is empty or required columns are missing.
    """
    content = _read_text(path)
    lines = content.splitlines()
    if not lines:
        raise ValueError(f"Datei {path} ist leer oder hat keine Header-Zeile.")

    reader = csv.DictReader(io.StringIO(content), delimiter=detect_delimiter(lines[0]))
    if reader.fieldnames is None:
        raise ValueError(f"Datei {path} ist leer oder hat keine Header-Zeile.")
    actual_cols = {normalize_whitespace(c).lower() for c in reader.fieldnames}
    missing = required_cols - actual_cols
    if missing:
        raise ValueError(
            f"Fehlende Spalten in {path}: {', '.join(sorted(missing))}"
        )

    return [
        {normalize_whitespace(k).lower(): normalize_whitespace(v) for k, v in row.items() if k is not None}
        for row in reader
    ]


def _int_or_none(value: str) -> Optional[int]:
    return int(value) if value else None


def _flag(value: str) -> bool:
    return value.lower() in _TRUE_VALUES


def _build(path: Path, rows: list[dict[str, str]], factory: Callable[[dict[str, str]], T]) -> list[T]:
    items: list[T] = []
    for row_num, row in enumerate(rows, start=2):
        try:
            items.append(factory(row))
        except (ValueError, KeyError) as exc:
            log.warning("Zeile %d in %s uebersprungen: %s", row_num, path, exc)
    return items


def _team(row: dict[str, str]) -> Team:
    return Team(
        team_id=int(row['team_id']),
        name=row['name'],
        city=row.get('city', ''),
        mascot=row.get('mascot', ''),
        abbreviation=row.get('abbreviation', ''),
        organization_id=_int_or_none(row.get('organization_id', '')),
    )


def _player(row: dict[str, str]) -> Player:
    return Player(
        player_id=int(row['player_id']),
        first_name=row.get('first_name', ''),
        last_name=row.get('last_name', ''),
        nick_name=row.get('nick_name', ''),
    )


def _card_set(row: dict[str, str]) -> CardSet:
    return CardSet(
        set_id=int(row['set_id']),
        name=row['name'],
        year=_int_or_none(row.get('year', '')),
        organization_id=_int_or_none(row.get('organization_id', '')),
    )


def _series(row: dict[str, str]) -> Series:
    return Series(
        series_id=int(row['series_id']),
        name=row['name'],
        set_id=int(row['set_id']),
        is_base=_flag(row.get('is_base', '')),
        parallel_of=_int_or_none(row.get('parallel_of', '')),
        color_id=_int_or_none(row.get('color_id', '')),
    )


def _existing_card(row: dict[str, str]) -> ExistingCard:
    ids = row.get('player_team_ids', '')
    return ExistingCard(
        card_id=int(row['card_id']),
        series_id=int(row['series_id']),
        card_number=row['card_number'],
        player_team_ids=tuple(int(i) for i in _ID_LIST_RE.split(ids) if i),
    )


# file name -> (required columns, row factory, required file)
CATALOG_FILES: dict[str, tuple[set[str], Callable, bool]] = {
    'teams': ({'team_id', 'name'}, _team, True),
    'players': ({'player_id', 'first_name', 'last_name'}, _player, True),
    'player_teams': (
        {'player_team_id', 'player_id', 'team_id'},
        lambda r: PlayerTeam(int(r['player_team_id']), int(r['player_id']), int(r['team_id'])),
        False,
    ),
    'player_aliases': (
        {'player_id', 'alias_name'},
        lambda r: PlayerAlias(int(r['player_id']), r['alias_name']),
        False,
    ),
    'sets': ({'set_id', 'name'}, _card_set, False),
    'series': ({'series_id', 'name', 'set_id'}, _series, False),
    'colors': ({'color_id', 'name'}, lambda r: Color(int(r['color_id']), r['name']), False),
    'cards': ({'card_id', 'series_id', 'card_number'}, _existing_card, False),
}


def read_catalog(directory: str | Path) -> InMemoryCatalog:
    """Load a reference catalog from a directory of CSV exports.

    Expects ``teams.csv`` and ``players.csv``; ``player_teams.csv``,
    ``player_aliases.csv``, ``sets.csv``, ``series.csv``, ``colors.csv``
    and ``cards.csv`` are optional.

    Args:
        directory: Directory containing the CSV files.

    Returns:
        InMemoryCatalog over the loaded records.

    Raises:
        FileNotFoundError: If the directory or a required file is missing.
        ValueError: If required columns are missing.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Katalog-Verzeichnis {directory} existiert nicht.")

    loaded: dict[str, list] = {}
    for name, (required_cols, factory, required) in CATALOG_FILES.items():
        path = directory / f'{name}.csv'
        if not path.exists():
            if required:
                raise FileNotFoundError(f"Katalog-Datei {path} fehlt.")
            loaded[name] = []
            continue
        loaded[name] = _build(path, _read_table(path, required_cols), factory)
        log.info("%d Eintraege gelesen aus %s", len(loaded[name]), path)

    return InMemoryCatalog(
        sets=loaded['sets'],
        series=loaded['series'],
        colors=loaded['colors'],
        teams=loaded['teams'],
        players=loaded['players'],
        player_teams=loaded['player_teams'],
        aliases=loaded['player_aliases'],
        cards=loaded['cards'],
    )
