"""Report generation for resolution records (CSV, HTML, summary)."""

import csv
import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from cardmatch import PlayerResolution, ResolutionRecord

log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates'

CSV_COLUMNS = [
    'Card_Number',
    'Sort_Order',
    'Set',
    'Series',
    'Color',
    'Player_Input',
    'Team_Input',
    'Player_Match',
    'Player_ID',
    'Match_Type',
    'Confidence',
    'Teams',
    'PlayerTeam_IDs',
    'Rookie',
    'Notes',
    'Flags',
    'Status',
]


def record_flags(record: ResolutionRecord) -> list[str]:
    """Flag codes of a record, e.g. NEW_PLAYER or AMBIGUOUS_SET."""
    flags = []
    if record.requires_new_set:
        flags.append('NEW_SET')
    elif record.set_matches.is_ambiguous:
        flags.append('AMBIGUOUS_SET')
    if record.requires_new_series:
        flags.append('NEW_SERIES')
    elif record.series_matches.is_ambiguous:
        flags.append('AMBIGUOUS_SERIES')
    if record.card.color_name and not record.color_matches.found:
        flags.append('UNKNOWN_COLOR')
    if record.requires_new_player:
        flags.append('NEW_PLAYER')
    if any(p.selected_player is None and p.player_matches.found for p in record.players):
        flags.append('AMBIGUOUS_PLAYER')
    if record.requires_new_team:
        flags.append('NEW_TEAM')
    if any(p.entry.needs_review for p in record.players):
        flags.append('TEAM_GUESS')
    return flags


def _label(candidate) -> str:
    return candidate.name if candidate else ''


def _entry_to_row(record: ResolutionRecord, resolution: PlayerResolution, flags: list[str]) -> dict:
    """Convert one player entry of a record to a flat dict for CSV/HTML output."""
    card = record.card
    selected = resolution.selected_player
    candidates = resolution.player_matches.candidates
    shown = selected or (candidates[0] if candidates else None)
    return {
        'Card_Number': card.card_number,
        'Sort_Order': str(card.sort_order),
        'Set': _label(record.card_set) or card.set_name,
        'Series': _label(record.series) or card.series_name,
        'Color': _label(record.color) or card.color_name,
        'Player_Input': resolution.entry.player_name,
        'Team_Input': ', '.join(resolution.entry.team_guess),
        'Player_Match': selected.name if selected else ' | '.join(c.name for c in candidates),
        'Player_ID': str(selected.entity_id) if selected else '',
        'Match_Type': shown.match_type if shown else 'NONE',
        'Confidence': f'{resolution.confidence:.4f}',
        'Teams': ', '.join(t.name for t in resolution.selected_teams),
        'PlayerTeam_IDs': ', '.join(str(i) for i in resolution.player_team_ids),
        'Rookie': 'RC' if card.is_rookie else '',
        'Notes': card.notes,
        'Flags': ', '.join(flags),
        'Status': 'RESOLVED' if not record.needs_review else 'REVIEW',
        # Row-level markers for cell highlighting in HTML
        '_review': resolution.needs_review or selected is None,
        '_new': resolution.requires_new_player or resolution.requires_new_team,
    }


def records_to_rows(records: list[ResolutionRecord]) -> list[dict]:
    """One row per player entry of every record."""
    rows = []
    for record in records:
        flags = record_flags(record)
        for resolution in record.players:
            rows.append(_entry_to_row(record, resolution, flags))
    return rows


def write_csv_report(records: list[ResolutionRecord], output_path: Path) -> None:
    """Write resolution records as a CSV report.

    Uses UTF-8 with BOM (utf-8-sig) and semicolon delimiter for
    compatibility with German Excel.

    Args:
        records: Resolution records of a batch.
        output_path: Path for the output CSV file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    rows = records_to_rows(records)
    with open(output_path, 'w', newline='', encoding='utf-8-sig') as f:
        writer = csv.DictWriter(
            f, fieldnames=CSV_COLUMNS, delimiter=';', extrasaction='ignore',
        )
        writer.writeheader()
        writer.writerows(rows)

    log.info("CSV-Report geschrieben: %s (%d Zeilen)", output_path, len(rows))


def write_html_report(
    records: list[ResolutionRecord],
    output_path: Path,
    checklist_name: str = '',
) -> None:
    """Write resolution records as an HTML report using Jinja2.

    Args:
        records: Resolution records of a batch.
        output_path: Path for the output HTML file.
        checklist_name: Name of the checklist file (for the report title).
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=True,
    )
    template = env.get_template('report.html')

    html = template.render(
        checklist_name=checklist_name,
        rows=records_to_rows(records),
        stats=compute_stats(records),
        columns=CSV_COLUMNS,
    )

    output_path.write_text(html, encoding='utf-8')
    log.info("HTML-Report geschrieben: %s", output_path)


def compute_stats(records: list[ResolutionRecord]) -> dict:
    """Compute summary statistics from resolution records."""
    players = [p for r in records for p in r.players]
    return {
        'cards': len(records),
        'fully_resolved': sum(1 for r in records if r.fully_resolved),
        'review': sum(1 for r in records if r.needs_review),
        'players': len(players),
        'players_selected': sum(1 for p in players if p.selected_player is not None),
        'players_ambiguous': sum(
            1 for p in players if p.selected_player is None and p.player_matches.found
        ),
        'new_sets': sum(1 for r in records if r.requires_new_set),
        'new_series': sum(1 for r in records if r.requires_new_series),
        'new_players': sum(1 for p in players if p.requires_new_player),
        'new_teams': sum(1 for r in records if r.requires_new_team),
        'rookies': sum(1 for r in records if r.card.is_rookie),
    }


def print_summary(records: list[ResolutionRecord], checklist_name: str = '') -> None:
    """Print a summary of resolution records to stdout.

    Args:
        records: Resolution records of a batch.
        checklist_name: Name of the checklist file.
    """
    stats = compute_stats(records)

    print(f"\n=== Import-Report: {checklist_name} ===")
    print(f"Karten gesamt:             {stats['cards']:>5}")
    print(f"Vollstaendig aufgeloest:   {stats['fully_resolved']:>5}")
    print(f"Zur Pruefung:              {stats['review']:>5}")
    print(f"Rookie-Karten:             {stats['rookies']:>5}")
    print("---")
    print(f"Spieler gesamt:            {stats['players']:>5}")
    print(f"  - zugeordnet:            {stats['players_selected']:>5}")
    print(f"  - mehrdeutig:            {stats['players_ambiguous']:>5}")
    print("---")
    print(f"Neue Sets noetig:          {stats['new_sets']:>5}")
    print(f"Neue Serien noetig:        {stats['new_series']:>5}")
    print(f"Neue Spieler noetig:       {stats['new_players']:>5}")
    print(f"Karten mit neuen Teams:    {stats['new_teams']:>5}")
    print()
