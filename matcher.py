"""card-matcher – CLI-Tool zum Abgleich von Karten-Checklisten gegen einen Referenzkatalog."""

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

from cardmatch import ProvisionalCard
from cardmatch.catalog import Catalog
from cardmatch.parsing import merge_duplicate_rows
from cardmatch.progress import InMemoryJobStore
from cardmatch.reader import read_card_rows, read_catalog
from cardmatch.reporter import print_summary, write_csv_report, write_html_report
from cardmatch.resolution import ResolutionEngine
from cardmatch.scoring import DEFAULT_POLICY, MatchPolicy

CHECKLIST_PATTERNS = ('*.csv', '*.tsv', '*.txt')


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        description='Abgleich von Karten-Checklisten gegen einen Referenzkatalog.',
        prog='matcher.py',
    )
    parser.add_argument(
        '--catalog', required=True, type=Path,
        help='Verzeichnis mit den Katalog-CSV-Dateien (teams.csv, players.csv, ...)',
    )
    parser.add_argument(
        '--cards', type=Path,
        help='Pfad zur Checklisten-Datei',
    )
    parser.add_argument(
        '--cards-dir', type=Path,
        help='Verzeichnis mit Checklisten-Dateien (Batch-Modus)',
    )
    parser.add_argument(
        '--output', type=Path,
        help='Pfad fuer die Report-Ausgabe (CSV)',
    )
    parser.add_argument(
        '--output-dir', type=Path,
        help='Verzeichnis fuer Report-Ausgaben (Batch-Modus)',
    )
    parser.add_argument(
        '--set', dest='set_name', required=True,
        help='Name des Sets aller Karten der Checkliste',
    )
    parser.add_argument(
        '--year', type=int,
        help='Jahr des Sets',
    )
    parser.add_argument(
        '--series', default='',
        help='Name der Serie (Standard: Basis-Serie des Sets)',
    )
    parser.add_argument(
        '--color', default='',
        help='Farbe/Parallel-Name der Serie',
    )
    parser.add_argument(
        '--organization', type=int,
        help='Organisations-ID des Sets (1=MLB, 2=NFL, 3=NBA, 4=NHL, 5=NCAA)',
    )
    parser.add_argument(
        '--html', action='store_true',
        help='Zusaetzlich einen HTML-Report erzeugen',
    )
    parser.add_argument(
        '--summary', action='store_true',
        help='Zusammenfassung auf stdout ausgeben',
    )
    parser.add_argument(
        '--fuzzy-threshold', type=float, default=DEFAULT_POLICY.fuzzy_similarity,
        help=f'Schwellenwert fuer Fuzzy-Matching von Spielern (Standard: {DEFAULT_POLICY.fuzzy_similarity})',
    )
    parser.add_argument(
        '--max-edit-distance', type=int, default=DEFAULT_POLICY.max_edit_distance,
        help=f'Maximale Editierdistanz fuer Spielernamen (Standard: {DEFAULT_POLICY.max_edit_distance})',
    )
    parser.add_argument(
        '--surname-threshold', type=float, default=DEFAULT_POLICY.surname_similarity,
        help=f'Schwellenwert bei exaktem Nachnamen (Standard: {DEFAULT_POLICY.surname_similarity})',
    )
    parser.add_argument(
        '--team-threshold', type=float, default=DEFAULT_POLICY.team_similarity,
        help=f'Schwellenwert fuer die Uebernahme von Teams (Standard: {DEFAULT_POLICY.team_similarity})',
    )
    parser.add_argument(
        '--resolved-threshold', type=float, default=DEFAULT_POLICY.resolved_confidence,
        help=f'Mindest-Konfidenz fuer vollstaendig aufgeloeste Karten (Standard: {DEFAULT_POLICY.resolved_confidence})',
    )
    parser.add_argument(
        '--workers', type=int, default=4,
        help='Anzahl paralleler Katalogabfragen (Standard: 4)',
    )
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help='Ausfuehrliche Log-Ausgabe',
    )
    return parser


def policy_from_args(args: argparse.Namespace) -> MatchPolicy:
    """Build the match policy from the threshold flags.

    Raises:
        ValueError: If a threshold is outside its valid range.
    """
    for name in ('fuzzy_threshold', 'surname_threshold', 'team_threshold', 'resolved_threshold'):
        value = getattr(args, name)
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"--{name.replace('_', '-')} muss zwischen 0 und 1 liegen, nicht {value}")
    if args.max_edit_distance < 0:
        raise ValueError(f"--max-edit-distance darf nicht negativ sein, nicht {args.max_edit_distance}")

    return replace(
        DEFAULT_POLICY,
        fuzzy_similarity=args.fuzzy_threshold,
        max_edit_distance=args.max_edit_distance,
        surname_similarity=args.surname_threshold,
        team_similarity=args.team_threshold,
        resolved_confidence=args.resolved_threshold,
    )


def prepare_cards(
    rows: list[ProvisionalCard],
    set_name: str,
    year: Optional[int],
    series_name: str = '',
    color_name: str = '',
) -> list[ProvisionalCard]:
    """Attach the set context to every checklist row and merge duplicate rows."""
    rows = [
        replace(row, set_name=set_name, year=year, series_name=series_name, color_name=color_name)
        for row in rows
    ]
    return merge_duplicate_rows(rows)


def process_single_checklist(
    catalog: Catalog,
    cards_path: Path,
    output_path: Path,
    args: argparse.Namespace,
    policy: MatchPolicy,
) -> None:
    """Resolve a single checklist file against the catalog."""
    cards = prepare_cards(
        read_card_rows(cards_path), args.set_name, args.year, args.series, args.color,
    )
    engine = ResolutionEngine(
        catalog,
        policy=policy,
        job_store=InMemoryJobStore(),
        organization_id=args.organization,
        max_workers=args.workers,
    )
    job_id = engine.start_job(total=len(cards))
    records = engine.resolve_batch(cards, job_id=job_id)

    progress = engine.get_progress(job_id)
    logging.info(
        "Job %s: %s (%d/%d Karten)",
        job_id, progress.status, progress.processed, progress.total,
    )

    for record in records:
        existing = engine.find_existing_card(record) if record.fully_resolved else None
        if existing is not None:
            logging.info(
                "Karte %s existiert bereits (ID %d)", record.card.card_number, existing.card_id,
            )

    write_csv_report(records, output_path)

    if args.html:
        write_html_report(records, output_path.with_suffix('.html'), cards_path.stem)

    if args.summary:
        print_summary(records, cards_path.name)


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
    )

    if not args.cards and not args.cards_dir:
        parser.error('Entweder --cards oder --cards-dir muss angegeben werden.')

    if args.cards and not args.output:
        parser.error('--output ist erforderlich bei Verwendung von --cards.')

    if args.cards_dir and not args.output_dir:
        parser.error('--output-dir ist erforderlich bei Verwendung von --cards-dir.')

    try:
        policy = policy_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    catalog = read_catalog(args.catalog)

    if args.cards:
        process_single_checklist(catalog, args.cards, args.output, args, policy)
    elif args.cards_dir:
        args.output_dir.mkdir(parents=True, exist_ok=True)
        checklists = sorted(
            {p for pattern in CHECKLIST_PATTERNS for p in args.cards_dir.glob(pattern)}
        )
        # Exclude catalog exports if they live in the same directory
        catalog_dir = args.catalog.resolve()
        checklists = [p for p in checklists if p.resolve().parent != catalog_dir]

        if not checklists:
            logging.warning("Keine Checklisten in %s gefunden.", args.cards_dir)
            return

        for cards_path in checklists:
            output_path = args.output_dir / f"report_{cards_path.stem}.csv"
            logging.info("Verarbeite %s ...", cards_path.name)
            process_single_checklist(catalog, cards_path, output_path, args, policy)


if __name__ == '__main__':
    main()
